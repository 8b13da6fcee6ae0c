"""
Feed Service — イベントログ (Event Log Source)

プロセス起動時に一度だけ JSON ファイルから履歴イベントを読み込む。
読み込んだログは追記専用・時系列順で、以降は読み取り専用として扱う。
配信 (リプレイ) によってログが変更されることはない。
"""

from dataclasses import dataclass
from pathlib import Path

from services.shared.events import OrderEvent, Restaurant, parse_events, parse_restaurants


@dataclass(frozen=True)
class EventLog:
    """起動時に読み込んだイベントログと参照データ"""

    events: tuple[OrderEvent, ...]
    restaurants: tuple[Restaurant, ...]

    def __len__(self) -> int:
        return len(self.events)


def load_events(path: str | Path) -> tuple[OrderEvent, ...]:
    """
    イベントログを読み出す。

    ファイル内の順序をそのまま保持する (= 時系列順)。
    形式が不正なログは起動エラーとして例外をそのまま送出する。
    """
    return tuple(parse_events(Path(path).read_bytes()))


def load_restaurants(path: str | Path) -> tuple[Restaurant, ...]:
    """レストラン一覧 (参照データ) を読み出す。"""
    return tuple(parse_restaurants(Path(path).read_bytes()))


def load_event_log(events_path: str | Path, restaurants_path: str | Path) -> EventLog:
    return EventLog(
        events=load_events(events_path),
        restaurants=load_restaurants(restaurants_path),
    )
