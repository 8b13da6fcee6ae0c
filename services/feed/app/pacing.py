"""
Feed Service — ペーシング・スケジューラ (Pacing Scheduler)

接続してきたオブザーバーごとに、イベントログ全体をリプレイして
「ライブフィード」のように見せる。

  ログ (N 件)
  ┌───────────────────────────────┬──────────────────┐
  │ [0, N-K)  即時に連続送信        │ [N-K, N)  1件ずつ │
  │                               │ interval 間隔で送信 │
  └───────────────────────────────┴──────────────────┘

- 各オブザーバーは独立したリプレイを持ち、常にインデックス 0 から始まる
- ログ自体は変更しない (カーソルはオブザーバーごと)
- 送信失敗はそのオブザーバーのリプレイの終了を意味する (リトライしない)
- 切断時は ReplayHandle.cancel() で残りの送信を即座に止める
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence

from services.shared.events import OrderEvent

logger = logging.getLogger(__name__)

DEFAULT_TAIL_SIZE = 1000
DEFAULT_INTERVAL = 1.0

SendFunc = Callable[[OrderEvent], Awaitable[None]]
SleepFunc = Callable[[float], Awaitable[None]]


class ReplayHandle:
    """
    実行中のリプレイへのハンドル。

    cancel() は冪等で、リプレイが自然終了した後に呼んでも安全。
    """

    def __init__(self, replay: "_Replay", task: asyncio.Task) -> None:
        self._replay = replay
        self._task = task
        self._cancelled = False

    @property
    def sent(self) -> int:
        """このオブザーバーに送信済みのイベント数"""
        return self._replay.sent

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def done(self) -> bool:
        return self._task.done()

    def cancel(self) -> None:
        if self._task.done():
            return
        self._cancelled = True
        self._task.cancel()

    async def wait(self) -> None:
        """リプレイが (理由を問わず) 終わるまで待つ。"""
        await asyncio.wait({self._task})


class _Replay:
    def __init__(
        self,
        events: Sequence[OrderEvent],
        send: SendFunc,
        tail_size: int,
        interval: float,
        sleep: SleepFunc,
    ) -> None:
        self.events = events
        self.send = send
        self.tail_size = max(tail_size, 0)
        self.interval = interval
        self.sleep = sleep
        self.sent = 0

    async def run(self) -> None:
        head = max(len(self.events) - self.tail_size, 0)
        try:
            # ── 即時送信部分 ──────────────────────────
            for i in range(head):
                await self.send(self.events[i])
                self.sent += 1
            logger.info("Replayed %d events immediately, pacing %d", head, len(self.events) - head)

            # ── ペース配信部分 (古い順に 1 件ずつ) ─────
            for i in range(head, len(self.events)):
                await self.sleep(self.interval)
                await self.send(self.events[i])
                self.sent += 1
        except asyncio.CancelledError:
            logger.info("Replay cancelled after %d events", self.sent)
            raise
        except Exception as exc:
            # チャネルが閉じた等。このオブザーバーの購読の正常終了として扱う
            logger.info("Stop sending events after %d: %s", self.sent, exc)
            return
        logger.info("Replay finished (%d events)", self.sent)


def start_replay(
    events: Sequence[OrderEvent],
    send: SendFunc,
    tail_size: int = DEFAULT_TAIL_SIZE,
    interval: float = DEFAULT_INTERVAL,
    sleep: SleepFunc = asyncio.sleep,
) -> ReplayHandle:
    """
    1 オブザーバー分のリプレイを開始する。

    実行中のイベントループ内から呼ぶこと。
    K (tail_size) >= N の場合は全件がペース配信、N = 0 なら何も送らない。
    """
    replay = _Replay(events, send, tail_size, interval, sleep)
    task = asyncio.create_task(replay.run())
    return ReplayHandle(replay, task)
