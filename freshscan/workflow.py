"""Scan-to-record workflow state machine.

One physical scan moves through

    Idle → LookupPending → Confirm → ExpiryCapture → (ExpiryManual) → Committing → Idle

and at most one scan is in flight at a time. External collaborators
(camera, detector, resolver, extractor) are awaited from background
tasks; every failure they raise is converted into an event and a
transition here, so callers only ever observe state changes.

A background task belongs to exactly one PendingScan. It is cancelled
whenever the workflow leaves that scan's states, and it re-checks that
its scan is still current after every await before touching state.

The opportunistic date guess on the trigger snapshot runs as its own task
beside the lookup. Confirm never waits for it, and it is cancelled when
the scan commits or aborts.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any

from .camera import CameraError
from .cooldown import CooldownCache
from .expiry.dates import normalize_date
from .models import PendingScan, ProductCandidate, ScanRecord
from .resolver import ResolverNetworkError

if TYPE_CHECKING:
    from .barcode import BarcodeDetector
    from .camera import ScannerCamera
    from .config import FreshScanConfig, ScannerConfig
    from .db import RecordStore
    from .expiry import ExpiryExtractor
    from .resolver import ProductResolver

logger = logging.getLogger(__name__)

_GENERIC_ERROR = "予期しないエラーが発生しました。もう一度スキャンしてください。"


class InvalidTransition(RuntimeError):
    """A user action was requested in a state that does not accept it."""


class EventKind(str, Enum):
    TRIGGERED = "triggered"
    CANDIDATE_READY = "candidate_ready"
    PRODUCT_NOT_FOUND = "product_not_found"
    EXPIRY_ATTEMPT_FAILED = "expiry_attempt_failed"
    MANUAL_ENTRY_REQUIRED = "manual_entry_required"
    COMMITTED = "committed"
    NETWORK_ERROR = "network_error"
    ABORTED = "aborted"
    SENSOR_ERROR = "sensor_error"
    SENSOR_RECOVERED = "sensor_recovered"


@dataclass
class ScanEvent:
    kind: EventKind
    message: str = ""
    barcode: str | None = None
    candidate: ProductCandidate | None = None
    record: ScanRecord | None = None


# States


@dataclass(frozen=True)
class Idle:
    pass


@dataclass(frozen=True)
class LookupPending:
    pending: PendingScan


@dataclass(frozen=True)
class Confirm:
    pending: PendingScan


@dataclass(frozen=True)
class ExpiryCapture:
    pending: PendingScan
    attempts: int = 0


@dataclass(frozen=True)
class ExpiryManual:
    pending: PendingScan
    message: str = ""


@dataclass(frozen=True)
class Committing:
    pending: PendingScan


State = Idle | LookupPending | Confirm | ExpiryCapture | ExpiryManual | Committing


@dataclass
class WorkflowSettings:
    cooldown_ms: int = 5000
    max_expiry_attempts: int = 5
    attempt_interval_ms: int = 2000
    frame_interval_ms: int = 33
    opportunistic_extraction: bool = True

    @classmethod
    def from_config(cls, config: ScannerConfig) -> WorkflowSettings:
        return cls(
            cooldown_ms=config.cooldown_ms,
            max_expiry_attempts=config.max_expiry_attempts,
            attempt_interval_ms=config.attempt_interval_ms,
            frame_interval_ms=config.frame_interval_ms,
            opportunistic_extraction=config.opportunistic_extraction,
        )


def _monotonic_ms() -> float:
    return time.monotonic() * 1000


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ScanWorkflow:
    """Drive a single camera through barcode scans into committed records."""

    def __init__(
        self,
        camera: ScannerCamera,
        detector: BarcodeDetector,
        resolver: ProductResolver,
        extractor: ExpiryExtractor,
        store: RecordStore,
        *,
        settings: WorkflowSettings | None = None,
        cooldown: CooldownCache | None = None,
        clock: Callable[[], float] | None = None,
        now: Callable[[], datetime] | None = None,
        on_event: Callable[[ScanEvent], None] | None = None,
    ) -> None:
        self._camera = camera
        self._detector = detector
        self._resolver = resolver
        self._extractor = extractor
        self._store = store
        self._settings = settings or WorkflowSettings()
        self._cooldown = cooldown or CooldownCache(self._settings.cooldown_ms)
        self._clock = clock or _monotonic_ms
        self._now = now or _utcnow
        self._on_event = on_event

        self._state: State = Idle()
        self._task: asyncio.Task | None = None
        self._guess_task: asyncio.Task | None = None
        self._sensor_notice: str | None = None

    @property
    def state(self) -> State:
        return self._state

    @property
    def pending(self) -> PendingScan | None:
        return getattr(self._state, "pending", None)

    @property
    def expiry_attempts(self) -> int:
        if isinstance(self._state, ExpiryCapture):
            return self._state.attempts
        pending = self.pending
        return pending.expiry_attempts if pending else 0

    @property
    def sensor_notice(self) -> str | None:
        """Persistent camera error message, None while frames are flowing."""
        return self._sensor_notice

    @property
    def settings(self) -> WorkflowSettings:
        return self._settings

    # ── detection loop ──

    async def run(self, stop: asyncio.Event | None = None) -> None:
        """Poll for barcodes until ``stop`` is set.

        Ticks are skipped while a scan is in flight.
        """
        stop = stop or asyncio.Event()
        interval = self._settings.frame_interval_ms / 1000
        try:
            while not stop.is_set():
                if isinstance(self._state, Idle):
                    await self.tick()
                await asyncio.sleep(interval)
        finally:
            if not isinstance(self._state, Idle):
                self.cancel("スキャナーを停止しました。")
            self._camera.release()

    async def tick(self) -> str | None:
        """Run one detection iteration. Returns the barcode that started a scan."""
        if not isinstance(self._state, Idle):
            return None

        try:
            frame = await self._camera.read_frame()
        except CameraError as e:
            self._set_sensor_notice(str(e))
            return None
        except Exception:
            logger.exception("フレームの取得に失敗しました")
            return None
        self._clear_sensor_notice()

        try:
            barcodes = await self._detector.detect(frame)
        except Exception:
            logger.exception("バーコード検出に失敗しました")
            return None
        if not barcodes:
            return None

        # Another tick may have started a scan while we were awaiting.
        if not isinstance(self._state, Idle):
            return None

        barcode = barcodes[0]
        now = self._clock()
        if self._cooldown.is_cooling(barcode, now):
            logger.debug("クールダウン中のためスキップ: %s", barcode)
            return None

        try:
            snapshot = self._camera.encode_jpeg(frame)
        except Exception:
            logger.exception("スナップショットの保存に失敗しました")
            return None
        self._cooldown.should_trigger(barcode, now)

        pending = PendingScan(barcode=barcode, snapshot=snapshot)
        self._transition(LookupPending(pending))
        logger.info("バーコードを検出しました: %s", barcode)
        self._emit(EventKind.TRIGGERED, barcode=barcode)
        self._start(self._lookup(pending))
        return barcode

    # ── user actions ──

    def confirm(self) -> None:
        """Accept the resolved candidate and start expiry capture."""
        state = self._state
        if not isinstance(state, Confirm):
            raise InvalidTransition(
                f"確認待ちの商品がありません (現在: {type(state).__name__})"
            )
        state.pending.expiry_attempts = 0
        self._transition(ExpiryCapture(state.pending, attempts=0))
        self._start(self._capture_expiry(state.pending))

    def submit_manual_date(self, value: str | date) -> ScanRecord | None:
        """Commit with a user-supplied expiry date.

        Returns the record, or None if saving failed (the scan is aborted).

        Raises:
            InvalidTransition: If manual entry was not requested.
            ValueError: If ``value`` is not a calendar date; state is unchanged.
        """
        state = self._state
        if not isinstance(state, ExpiryManual):
            raise InvalidTransition(
                f"手入力待ちではありません (現在: {type(state).__name__})"
            )

        if isinstance(value, datetime):
            expiry = value.date().isoformat()
        elif isinstance(value, date):
            expiry = value.isoformat()
        else:
            expiry = normalize_date(value)
            if expiry is None:
                raise ValueError(f"日付として解釈できません: {value!r}")
        return self._commit(state.pending, expiry, source="manual")

    def cancel(self, message: str = "スキャンを中止しました。") -> None:
        """Abandon the scan in flight, if any, and return to Idle."""
        if isinstance(self._state, Idle):
            return
        self._abort(EventKind.ABORTED, message)

    async def wait(self) -> None:
        """Wait until the current background step and date guess have settled."""
        while True:
            running = {
                task for task in (self._task, self._guess_task)
                if task is not None and not task.done()
            }
            if not running:
                return
            await asyncio.wait(running)

    # ── background steps ──

    async def _lookup(self, pending: PendingScan) -> None:
        barcode = pending.barcode
        if self._settings.opportunistic_extraction:
            self._cancel_guess()
            self._guess_task = asyncio.create_task(self._guess_expiry(pending))
        try:
            lookup = await self._resolver.lookup(barcode)
        except ResolverNetworkError as e:
            if self._is_current(pending, LookupPending):
                self._abort(EventKind.NETWORK_ERROR, f"ネットワークエラー: {e}")
            return
        except Exception:
            logger.exception("商品情報の取得でエラーが発生しました: %s", barcode)
            if self._is_current(pending, LookupPending):
                self._abort(EventKind.ABORTED, _GENERIC_ERROR)
            return

        if not self._is_current(pending, LookupPending):
            return

        candidate = lookup.to_candidate(barcode)
        candidate.suggested_expiry = pending.suggested_expiry
        pending.candidate = candidate
        self._transition(Confirm(pending))

        if not candidate.found:
            self._emit(
                EventKind.PRODUCT_NOT_FOUND,
                "商品がデータベースに見つかりませんでした。仮の名前で続行できます。",
                barcode=barcode,
                candidate=candidate,
            )
        self._emit(EventKind.CANDIDATE_READY, candidate.name, barcode=barcode,
                   candidate=candidate)

    async def _guess_expiry(self, pending: PendingScan) -> None:
        """Read a first date off the trigger snapshot, as a suggestion only."""
        guess = await self._extractor.extract(pending.snapshot)
        if guess is None or not self._is_current(pending):
            return
        pending.suggested_expiry = guess
        if pending.candidate is not None:
            pending.candidate.suggested_expiry = guess
        logger.debug("賞味期限の候補: %s (%s)", guess, pending.barcode)

    async def _capture_expiry(self, pending: PendingScan) -> None:
        max_attempts = self._settings.max_expiry_attempts
        interval = self._settings.attempt_interval_ms / 1000
        try:
            while True:
                state = self._state
                if not (isinstance(state, ExpiryCapture) and state.pending is pending):
                    return
                if state.attempts >= max_attempts:
                    message = "賞味期限を自動で読み取れませんでした。手入力してください。"
                    self._transition(ExpiryManual(pending, message))
                    self._emit(EventKind.MANUAL_ENTRY_REQUIRED, message,
                               barcode=pending.barcode, candidate=pending.candidate)
                    return

                await asyncio.sleep(interval)
                if not self._is_current(pending, ExpiryCapture):
                    return
                expiry = await self._read_expiry()
                if not self._is_current(pending, ExpiryCapture):
                    return

                if expiry is not None:
                    self._commit(pending, expiry, source="extractor")
                    return

                attempts = state.attempts + 1
                pending.expiry_attempts = attempts
                self._transition(ExpiryCapture(pending, attempts))
                logger.info("賞味期限を読み取れませんでした (%d/%d)", attempts, max_attempts)
                self._emit(EventKind.EXPIRY_ATTEMPT_FAILED,
                           f"{attempts}/{max_attempts}", barcode=pending.barcode)
        except Exception:
            logger.exception("賞味期限の読み取りでエラーが発生しました")
            if self._is_current(pending):
                self._abort(EventKind.ABORTED, _GENERIC_ERROR)

    async def _read_expiry(self) -> str | None:
        """One automated attempt; camera failures count as "no date"."""
        try:
            frame = await self._camera.read_frame()
            image = self._camera.encode_jpeg(frame)
        except CameraError as e:
            logger.warning("賞味期限用のフレームを取得できませんでした: %s", e)
            return None
        return await self._extractor.extract(image)

    # ── transitions ──

    def _commit(self, pending: PendingScan, expiry: str, *, source: str) -> ScanRecord | None:
        candidate = pending.candidate
        if candidate is None or not expiry:
            raise InvalidTransition("商品情報または賞味期限がないため登録できません")

        self._transition(Committing(pending))
        record = ScanRecord(
            id=str(uuid.uuid4()),
            name=candidate.name,
            expiry_date=expiry,
            scan_timestamp=self._now().isoformat(),
            image_url=candidate.image_url,
            brand=candidate.brand,
            quantity=candidate.quantity,
            categories=candidate.categories,
            nutri_score=candidate.nutri_score,
            eco_score=candidate.eco_score,
            ingredients=candidate.ingredients,
            country=candidate.country,
            barcode=candidate.barcode,
            url=candidate.url,
            expiry_source=source,
        )
        try:
            self._store.append(record)
        except Exception:
            logger.exception("レコードの保存に失敗しました: %s", record.name)
            self._abort(EventKind.ABORTED, "記録を保存できませんでした。もう一度スキャンしてください。")
            return None

        self._cancel_task()
        self._cancel_guess()
        self._transition(Idle())
        logger.info("登録しました: %s (賞味期限 %s, %s)", record.name, expiry, source)
        self._emit(EventKind.COMMITTED, f"追加: {record.name}",
                   barcode=pending.barcode, record=record)
        return record

    def _abort(self, kind: EventKind, message: str) -> None:
        pending = self.pending
        self._cancel_task()
        self._cancel_guess()
        self._camera.release()
        self._transition(Idle())
        logger.warning("スキャンを中止しました: %s", message)
        self._emit(kind, message, barcode=pending.barcode if pending else None)

    def _transition(self, new: State) -> None:
        logger.debug("%s → %s", type(self._state).__name__, type(new).__name__)
        self._state = new

    def _is_current(self, pending: PendingScan, state_type: type | None = None) -> bool:
        if getattr(self._state, "pending", None) is not pending:
            return False
        return state_type is None or isinstance(self._state, state_type)

    def _start(self, coro: Coroutine[Any, Any, None]) -> None:
        self._cancel_task()
        self._task = asyncio.create_task(coro)

    def _cancel_task(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done():
            return
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        if task is not current:
            task.cancel()

    def _cancel_guess(self) -> None:
        # The reference is kept so wait() covers the cancellation too.
        task = self._guess_task
        if task is not None and not task.done():
            task.cancel()

    # ── notifications ──

    def _set_sensor_notice(self, message: str) -> None:
        if self._sensor_notice is None:
            logger.warning("カメラエラー: %s", message)
            self._emit(EventKind.SENSOR_ERROR, message)
        self._sensor_notice = message

    def _clear_sensor_notice(self) -> None:
        if self._sensor_notice is not None:
            self._sensor_notice = None
            logger.info("カメラが復帰しました")
            self._emit(EventKind.SENSOR_RECOVERED)

    def _emit(self, kind: EventKind, message: str = "", **kwargs: Any) -> None:
        if self._on_event is None:
            return
        try:
            self._on_event(ScanEvent(kind, message, **kwargs))
        except Exception:
            logger.exception("イベント処理中にエラーが発生しました: %s", kind.value)


def create_workflow(
    config: FreshScanConfig,
    store: RecordStore,
    *,
    on_event: Callable[[ScanEvent], None] | None = None,
) -> ScanWorkflow:
    """Wire the configured camera, detector, resolver and extractor."""
    from .barcode import PyzbarBarcodeDetector
    from .camera import ScannerCamera
    from .expiry import create_extractor
    from .resolver import OpenFoodFactsResolver

    settings = WorkflowSettings.from_config(config.scanner)
    return ScanWorkflow(
        camera=ScannerCamera(
            camera_index=config.camera.index,
            save_dir=config.camera.save_dir,
        ),
        detector=PyzbarBarcodeDetector(config.barcode.formats),
        resolver=OpenFoodFactsResolver(
            base_url=config.resolver.base_url,
            timeout=config.resolver.timeout,
            max_retries=config.resolver.max_retries,
            user_agent=config.resolver.user_agent,
        ),
        extractor=create_extractor(config),
        store=store,
        settings=settings,
        cooldown=CooldownCache(
            settings.cooldown_ms, config.scanner.cooldown_max_entries
        ),
        on_event=on_event,
    )
