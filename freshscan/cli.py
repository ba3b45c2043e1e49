"""CLI entry point for the scanner."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
import threading
from pathlib import Path

from dotenv import load_dotenv

from .camera import ScannerCamera
from .config import load_config
from .db import RecordStore
from .freshness import FreshnessStatus, freshness, sort_by_expiry
from .workflow import EventKind, InvalidTransition, ScanEvent, ScanWorkflow, create_workflow

_STATUS_MARK = {
    FreshnessStatus.OK: "✅",
    FreshnessStatus.EXPIRING: "⚠ ",
    FreshnessStatus.EXPIRED: "❌",
    FreshnessStatus.INVALID: "❓",
}


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="freshscan",
        description="賞味期限スキャナー — バーコードと賞味期限を読み取って記録します",
    )
    parser.add_argument(
        "--config",
        "-c",
        type=str,
        default=None,
        help="設定ファイルのパス (TOML)",
    )
    parser.add_argument(
        "--verbose", "-v", action="count", default=0,
        help="ログを詳しく表示 (-vv でデバッグ)",
    )

    sub = parser.add_subparsers(dest="command")

    # cameras
    sub.add_parser("cameras", help="利用可能なカメラ一覧を表示")

    # scan
    scan_parser = sub.add_parser("scan", help="カメラで商品をスキャンして記録")
    scan_parser.add_argument(
        "--once", action="store_true", help="1件記録したら終了"
    )

    # list
    list_parser = sub.add_parser("list", help="記録した商品を賞味期限順に表示")
    list_parser.add_argument("--json", action="store_true", help="JSON形式で出力")

    # delete
    delete_parser = sub.add_parser("delete", help="記録を削除")
    delete_parser.add_argument("record_id", help="削除するレコードID")

    # lookup
    lookup_parser = sub.add_parser("lookup", help="バーコードから商品情報を検索")
    lookup_parser.add_argument("barcode", help="JAN/EAN/UPC コード")
    lookup_parser.add_argument("--json", action="store_true", help="JSON形式で出力")

    # extract
    extract_parser = sub.add_parser("extract", help="画像から賞味期限を読み取る")
    extract_parser.add_argument("image", help="画像ファイル (JPEG)")

    # watch
    sub.add_parser("watch", help="定期的に賞味期限をチェック")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    load_dotenv()
    level = logging.WARNING
    if args.verbose == 1:
        level = logging.INFO
    elif args.verbose > 1:
        level = logging.DEBUG
    logging.basicConfig(
        level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    config = load_config(args.config)

    try:
        match args.command:
            case "cameras":
                _cmd_cameras()
            case "scan":
                asyncio.run(_cmd_scan(config, args))
            case "list":
                _cmd_list(config, args)
            case "delete":
                _cmd_delete(config, args)
            case "lookup":
                asyncio.run(_cmd_lookup(config, args))
            case "extract":
                asyncio.run(_cmd_extract(config, args))
            case "watch":
                asyncio.run(_cmd_watch(config))
    except KeyboardInterrupt:
        print("\n終了します。")


def _cmd_cameras() -> None:
    cameras = ScannerCamera.list_cameras()
    if not cameras:
        print("利用可能なカメラが見つかりませんでした。")
        return
    print(f"利用可能なカメラ: {len(cameras)} 台")
    for idx in cameras:
        print(f"  カメラ {idx}")


async def _prompt(message: str) -> str:
    """Read a line without tying up the default executor.

    ``input()`` cannot be interrupted, so it runs on a daemon thread;
    otherwise ``asyncio.run`` would wait for Enter when shutting down
    after Ctrl+C.
    """
    loop = asyncio.get_running_loop()
    future: asyncio.Future[str] = loop.create_future()

    def deliver(result: str | None, error: BaseException | None) -> None:
        if future.done():
            return
        if error is not None:
            future.set_exception(error)
        else:
            future.set_result(result)

    def ask() -> None:
        try:
            result, error = input(message), None
        except Exception as e:
            result, error = None, e
        try:
            loop.call_soon_threadsafe(deliver, result, error)
        except RuntimeError:
            pass  # loop already closed

    threading.Thread(target=ask, name="freshscan-prompt", daemon=True).start()
    return await future


async def _cmd_scan(config, args) -> None:
    events: asyncio.Queue[ScanEvent] = asyncio.Queue()
    store = RecordStore(config.database.path)
    workflow = create_workflow(config, store, on_event=events.put_nowait)

    stop = asyncio.Event()
    runner = asyncio.create_task(workflow.run(stop))
    print("📷 スキャン中... バーコードをカメラに向けてください (Ctrl+C で終了)")
    try:
        while not stop.is_set():
            event = await events.get()
            await _handle_event(workflow, event, stop, once=args.once)
    finally:
        stop.set()
        await runner
        store.close()


async def _handle_event(
    workflow: ScanWorkflow, event: ScanEvent, stop: asyncio.Event, *, once: bool
) -> None:
    match event.kind:
        case EventKind.TRIGGERED:
            print(f"🔍 バーコード {event.barcode} の商品情報を取得中...")
        case EventKind.PRODUCT_NOT_FOUND:
            print(f"⚠  {event.message}")
        case EventKind.CANDIDATE_READY:
            c = event.candidate
            print(f"\n🛒 {c.name}")
            for label, value in (
                ("ブランド", c.brand),
                ("内容量", c.quantity),
                ("Nutri-Score", c.nutri_score),
            ):
                if value:
                    print(f"   {label}: {value}")
            answer = (await _prompt("賞味期限の読み取りに進みますか? [Y/n] ")).strip()
            if answer.lower() in ("", "y", "yes"):
                workflow.confirm()
                print("📅 賞味期限の印字をカメラに向けてください...")
            else:
                workflow.cancel("スキャンを取り消しました。")
        case EventKind.EXPIRY_ATTEMPT_FAILED:
            print(f"   読み取り失敗 ({event.message})")
        case EventKind.MANUAL_ENTRY_REQUIRED:
            await _manual_entry(workflow, event)
        case EventKind.COMMITTED:
            r = event.record
            print(f"✅ {r.name} (賞味期限: {r.expiry_date}) を追加しました")
            if once:
                stop.set()
        case EventKind.NETWORK_ERROR | EventKind.ABORTED:
            print(f"❌ {event.message}", file=sys.stderr)
        case EventKind.SENSOR_ERROR:
            print(f"📷 カメラエラー: {event.message}", file=sys.stderr)
        case EventKind.SENSOR_RECOVERED:
            print("📷 カメラが復帰しました")


async def _manual_entry(workflow: ScanWorkflow, event: ScanEvent) -> None:
    print(f"⚠  {event.message}")
    suggestion = event.candidate.suggested_expiry if event.candidate else None
    hint = f"既定: {suggestion}, " if suggestion else ""
    while True:
        text = (await _prompt(f"賞味期限 (YYYY-MM-DD, {hint}q で中止): ")).strip()
        if text.lower() == "q" or (not text and not suggestion):
            workflow.cancel("手入力を中止しました。記録は追加されていません。")
            return
        try:
            workflow.submit_manual_date(text or suggestion)
            return
        except ValueError as e:
            print(f"   {e}")
        except InvalidTransition:
            return


def _cmd_list(config, args) -> None:
    store = RecordStore(config.database.path)
    try:
        records = sort_by_expiry(store.list_records())
    finally:
        store.close()

    warn_days = config.freshness.warn_days
    if args.json:
        data = []
        for r in records:
            f = freshness(r, warn_days=warn_days)
            item = r.to_dict()
            item["status"] = f.status.value
            item["days_left"] = f.days_left
            data.append(item)
        print(json.dumps(data, ensure_ascii=False, indent=2))
        return

    if not records:
        print("記録された商品はありません。")
        return
    print(f"📦 記録された商品 ({len(records)} 品):")
    for r in records:
        f = freshness(r, warn_days=warn_days)
        print(f"  {_STATUS_MARK[f.status]} {r.expiry_date:<10}  {r.name}  [{f.label}]  ({r.id})")


def _cmd_delete(config, args) -> None:
    store = RecordStore(config.database.path)
    try:
        deleted = store.delete(args.record_id)
    finally:
        store.close()
    if deleted:
        print(f"削除しました: {args.record_id}")
    else:
        print(f"レコードが見つかりませんでした (変更なし): {args.record_id}")


async def _cmd_lookup(config, args) -> None:
    from .resolver import OpenFoodFactsResolver, ResolverNetworkError

    resolver = OpenFoodFactsResolver(
        base_url=config.resolver.base_url,
        timeout=config.resolver.timeout,
        max_retries=config.resolver.max_retries,
        user_agent=config.resolver.user_agent,
    )
    try:
        result = await resolver.lookup(args.barcode)
    except ResolverNetworkError as e:
        print(f"ネットワークエラー: {e}", file=sys.stderr)
        sys.exit(1)

    candidate = result.to_candidate(args.barcode)
    if args.json:
        data = {
            "found": candidate.found,
            "name": candidate.name,
            "brand": candidate.brand,
            "quantity": candidate.quantity,
            "categories": candidate.categories,
            "nutriScore": candidate.nutri_score,
            "ecoScore": candidate.eco_score,
            "imageUrl": candidate.image_url,
            "url": candidate.url,
        }
        print(json.dumps(data, ensure_ascii=False, indent=2))
        return

    if not candidate.found:
        print(f"商品が見つかりませんでした: {candidate.name}")
        return
    print(f"🛒 {candidate.name}")
    if candidate.brand:
        print(f"   ブランド: {candidate.brand}")
    if candidate.quantity:
        print(f"   内容量: {candidate.quantity}")
    if candidate.url:
        print(f"   {candidate.url}")


async def _cmd_extract(config, args) -> None:
    from .expiry import create_extractor

    path = Path(args.image)
    if not path.exists():
        print(f"ファイルが見つかりません: {path}", file=sys.stderr)
        sys.exit(1)

    extractor = create_extractor(config)
    print("🔍 賞味期限を読み取り中...")
    expiry = await extractor.extract(path.read_bytes())
    if expiry is None:
        print("賞味期限が見つかりませんでした。")
        return
    print(f"📅 {expiry}")


async def _cmd_watch(config) -> None:
    from .scheduler import FreshnessScheduler

    scheduler = FreshnessScheduler(config)
    scheduler.start()
    for job in scheduler.get_jobs():
        print(f"⏰ {job['name']}: 次回 {job['next_run']}")
    try:
        await asyncio.Event().wait()
    finally:
        scheduler.stop()
