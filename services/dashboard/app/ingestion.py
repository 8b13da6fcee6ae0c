"""
Dashboard Service — インジェスション・エンジン (Ingestion Engine)

Event Sourcing の受信側。到着したイベントを orderId ごとに
到着順のまま追記し、注文のライフサイクル記録 (OrderRecord) を組み立てる。

- 記録は追記専用で削除しない (プロセス存続中は全履歴を保持)
- 現在の状態は記録から毎回再計算する (破壊的な更新はしない)
- バッファリングモード: 受信イベントを一時バッファに溜め、
  閾値到達時または flush() 呼び出し時にまとめて適用する
- 重複・順序違いの検知はしない (同じイベントを 2 回渡すと集計が狂う)

セッションごとにインスタンスを生成し、参照としてビューに渡す。
"""

import logging
import threading
from collections.abc import Mapping
from types import MappingProxyType

from pydantic import ValidationError

from services.shared.events import OrderEvent, parse_event

logger = logging.getLogger(__name__)

DEFAULT_FLUSH_THRESHOLD = 1200


class IngestionEngine:
    """
    orderId → イベント列 の記録を保持する。

    ingest / flush / snapshot と各カウンタの読み書きはロックで直列化されるため、
    複数ストリームから 1 つのエンジンを共有しても
    同一注文への追記が競合したり、読み手が追記途中の記録を見ることはない。
    """

    def __init__(self, flush_threshold: int | None = DEFAULT_FLUSH_THRESHOLD) -> None:
        self.flush_threshold = flush_threshold or 0
        self._records: dict[str, list[OrderEvent]] = {}
        self._buffer: list[OrderEvent] = []
        self._lock = threading.Lock()
        self.dropped = 0
        self.version = 0

    # ── 書き込み ──────────────────────────────────

    def ingest(self, event: OrderEvent) -> None:
        """
        イベントを 1 件受け付ける。

        バッファリングモードでは閾値に達した時点で flush する。
        """
        with self._lock:
            if not self.flush_threshold:
                self._apply(event)
                self.version += 1
                return
            self._buffer.append(event)
            if len(self._buffer) >= self.flush_threshold:
                self._flush_locked()

    def ingest_raw(self, message: str | bytes) -> OrderEvent | None:
        """
        ワイヤー上の 1 メッセージをパースして受け付ける。

        形式が不正なメッセージは破棄し、None を返す。他の注文の記録には影響しない。
        """
        try:
            event = parse_event(message)
        except ValidationError as exc:
            with self._lock:
                self.dropped += 1
            logger.warning("Dropped malformed event (%d errors): %.200s", exc.error_count(), message)
            return None
        self.ingest(event)
        return event

    def flush(self) -> int:
        """バッファ内のイベントを溜めた順に記録へ適用する。適用件数を返す。"""
        with self._lock:
            return self._flush_locked()

    def _flush_locked(self) -> int:
        if not self._buffer:
            return 0
        pending, self._buffer = self._buffer, []
        for event in pending:
            self._apply(event)
        self.version += 1
        logger.debug("Flushed %d events (%d orders)", len(pending), len(self._records))
        return len(pending)

    def _apply(self, event: OrderEvent) -> None:
        record = self._records.get(event.order_id)
        if record is None:
            self._records[event.order_id] = [event]
        else:
            record.append(event)

    # ── 読み取り ──────────────────────────────────

    def snapshot(self) -> Mapping[str, tuple[OrderEvent, ...]]:
        """
        読み取り専用のスナップショットを返す。

        注文は初めて現れた順。未 flush のイベントは含まれない。
        """
        with self._lock:
            return MappingProxyType(
                {order_id: tuple(events) for order_id, events in self._records.items()}
            )

    def record(self, order_id: str) -> tuple[OrderEvent, ...] | None:
        with self._lock:
            events = self._records.get(order_id)
            return tuple(events) if events is not None else None

    @property
    def pending(self) -> int:
        """バッファ内の未適用イベント数"""
        with self._lock:
            return len(self._buffer)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
