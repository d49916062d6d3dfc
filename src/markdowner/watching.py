"""ファイル変更を監視して該当ドキュメントを再レンダリングするコントローラー。"""

from __future__ import annotations

import asyncio
import enum
import logging
import os
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver, ObservedWatch

from .config import DEFAULT_SOURCE_EXTENSION
from .errors import WatchSubscriptionError
from .paths import discover_documents, is_target_document, iter_directories, relative_to_base
from .rendering import RenderJob


# 1 回の保存で Write が連続して届くため、この間隔以内の書き込みはまとめる
DEBOUNCE_SECONDS = 0.2
HEALTH_CHECK_INTERVAL = 1.0

_STOP = object()


def file_signature(path: Path) -> tuple[int, int] | None:
    """内容の変化を判定するための ``(st_mtime_ns, st_size)``。取得できなければ None。"""

    try:
        stat = path.stat()
    except OSError:
        return None
    return stat.st_mtime_ns, stat.st_size


class WatchPhase(enum.Enum):
    IDLE = "idle"
    WATCHING = "watching"
    STOPPED = "stopped"


@dataclass(slots=True)
class WatchState:
    """監視中のディレクトリ、デバウンス用の最終書き込み時刻と、ファイルごとの (mtime, size)。

    イベントループのスレッドからのみ更新されます。
    """

    watched: dict[Path, ObservedWatch] = field(default_factory=dict)
    last_write: dict[Path, float] = field(default_factory=dict)
    signatures: dict[Path, tuple[int, int]] = field(default_factory=dict)
    in_flight: set[Path] = field(default_factory=set)
    pending: set[Path] = field(default_factory=set)


class _EventForwarder(FileSystemEventHandler):
    """watchdog のスレッドから asyncio のキューへイベントを受け渡します。"""

    def __init__(self, loop: asyncio.AbstractEventLoop, queue: asyncio.Queue, logger: logging.Logger) -> None:
        super().__init__()
        self._loop = loop
        self._queue = queue
        self._logger = logger

    def on_any_event(self, event: FileSystemEvent) -> None:
        try:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, event)
        except RuntimeError:
            # 停止処理中にループが閉じられた後のイベント
            self._logger.debug("イベントループ停止後のイベントを破棄しました: %s", event)


class WatchController:
    """入力ルート配下のファイル変更を監視し、RenderJob を再実行します。"""

    def __init__(
        self,
        root: Path,
        job: RenderJob,
        *,
        extension: str = DEFAULT_SOURCE_EXTENSION,
        target: Path | None = None,
        observer_factory: Callable[[], BaseObserver] = Observer,
        clock: Callable[[], float] = time.monotonic,
        debounce: float = DEBOUNCE_SECONDS,
        logger: logging.Logger | None = None,
    ) -> None:
        self._root = Path(root)
        self._job = job
        self._extension = extension
        # 指定時はこのファイルだけを再レンダリングし、サブディレクトリは購読しない
        self._target = Path(target) if target is not None else None
        self._observer_factory = observer_factory
        self._clock = clock
        self._debounce = debounce
        self._logger = logger or logging.getLogger(f"{__name__}.{self.__class__.__name__}")
        self.state = WatchState()
        self.phase = WatchPhase.IDLE
        self._observer: BaseObserver | None = None
        self._handler: _EventForwarder | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._queue: asyncio.Queue | None = None
        self._tasks: set[asyncio.Task] = set()

    async def run(self) -> None:
        """監視を開始し、停止されるまでイベントを処理します。"""

        await self.start()
        try:
            await self._consume()
        finally:
            await self.close()

    async def start(self) -> None:
        """ルート配下の全ディレクトリ (単一ファイル指定時はルートのみ) を購読して監視状態へ移行します。"""

        if self.phase is not WatchPhase.IDLE:
            raise RuntimeError(f"監視は既に開始されています (phase={self.phase.value})")
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        self._handler = _EventForwarder(self._loop, self._queue, self._logger)
        self._observer = self._observer_factory()
        try:
            if self._target is None:
                self._subscribe_tree(self._root)
            else:
                self._watch_directory(self._root)
            self._observer.start()
        except WatchSubscriptionError:
            self.phase = WatchPhase.STOPPED
            raise
        except OSError as exc:
            self.phase = WatchPhase.STOPPED
            raise WatchSubscriptionError(self._root, exc) from exc
        self._record_signatures()
        self.phase = WatchPhase.WATCHING
        self._logger.info("監視を開始しました (%d ディレクトリ): %s", len(self.state.watched), self._root)

    def stop(self) -> None:
        """監視ループへ停止を要求します。別スレッドからも呼び出せます。"""

        if self._loop is None or self._queue is None or self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self._queue.put_nowait, _STOP)

    async def drain(self) -> None:
        """実行中の再レンダリングがすべて終わるまで待ちます。"""

        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        self.phase = WatchPhase.STOPPED
        observer = self._observer
        if observer is not None:
            observer.stop()
            if observer.is_alive():
                await asyncio.to_thread(observer.join)
        await self.drain()
        self._logger.info("監視を終了しました: %s", self._root)

    async def _consume(self) -> None:
        assert self._queue is not None and self._observer is not None
        while True:
            try:
                event = await asyncio.wait_for(self._queue.get(), timeout=HEALTH_CHECK_INTERVAL)
            except asyncio.TimeoutError:
                if not self._observer.is_alive():
                    self._logger.error("ファイル監視スレッドが停止したため監視を終了します。")
                    return
                continue
            if event is _STOP:
                return
            try:
                self.handle_event(event)
            except WatchSubscriptionError as exc:
                self._logger.error("監視エラー: %s", exc)
                return

    # Event classification ---------------------------------------------

    def handle_event(self, event: FileSystemEvent) -> None:
        """1 件のファイルシステムイベントを分類して処理します。"""

        event_type = event.event_type
        source = Path(os.fsdecode(event.src_path))
        if event_type == EVENT_TYPE_MODIFIED:
            if not event.is_directory and self._is_live_target(source):
                self._on_write(source)
        elif event_type == EVENT_TYPE_CREATED:
            if event.is_directory:
                self._on_directory_created(source)
            elif self._is_live_target(source):
                self._logger.info("新しいファイルを検知しました: %s", source)
                self._request_render(source)
        elif event_type == EVENT_TYPE_DELETED:
            if event.is_directory or source in self.state.watched:
                self._unwatch_tree(source)
            else:
                self._forget(source)
        elif event_type == EVENT_TYPE_MOVED:
            destination = Path(os.fsdecode(event.dest_path))
            if event.is_directory or source in self.state.watched:
                self._unwatch_tree(source)
                self._on_directory_created(destination)
            else:
                self._forget(source)
                if self._is_live_target(destination) and self._within_root(destination):
                    self._logger.info("保存 (リネーム) を検知しました: %s", destination)
                    self._request_render(destination)
        # opened / closed などのイベントは無視する

    def _on_write(self, path: Path) -> None:
        signature = file_signature(path)
        if signature is not None and self.state.signatures.get(path) == signature:
            # chmod などの属性変更のみ
            self._logger.debug("内容の変わらない変更を無視しました: %s", path)
            return
        now = self._clock()
        last = self.state.last_write.get(path)
        if last is not None and now - last < self._debounce:
            self._logger.debug("連続した書き込みをまとめました: %s", path)
            return
        self.state.last_write[path] = now
        self._logger.info("変更を検知しました: %s", path)
        self._request_render(path)

    def _on_directory_created(self, path: Path) -> None:
        if self._target is not None or not path.is_dir() or not self._within_root(path):
            return
        self._logger.info("新しいディレクトリを検知しました: %s", path)
        self._subscribe_tree(path)
        try:
            documents = discover_documents(path, self._extension)
        except FileNotFoundError:
            return
        for document in documents:
            self._request_render(document)

    def _is_live_target(self, path: Path) -> bool:
        if self._target is not None and path != self._target:
            return False
        return is_target_document(path, self._extension) and path.is_file()

    def _forget(self, path: Path) -> None:
        self.state.last_write.pop(path, None)
        self.state.signatures.pop(path, None)

    def _record_signatures(self) -> None:
        if self._target is not None:
            documents = [self._target]
        else:
            try:
                documents = discover_documents(self._root, self._extension)
            except FileNotFoundError:
                return
        for document in documents:
            signature = file_signature(document)
            if signature is not None:
                self.state.signatures[document] = signature

    def _within_root(self, path: Path) -> bool:
        try:
            relative_to_base(path, self._root)
        except ValueError:
            return False
        return True

    # Watch set -----------------------------------------------------------

    def _subscribe_tree(self, root: Path) -> None:
        for directory in iter_directories(root):
            self._watch_directory(directory)

    def _watch_directory(self, path: Path) -> None:
        if path in self.state.watched:
            return
        assert self._observer is not None and self._handler is not None
        try:
            watch = self._observer.schedule(self._handler, str(path), recursive=False)
        except FileNotFoundError:
            self._logger.debug("購読前にディレクトリが削除されました: %s", path)
            return
        except OSError as exc:
            raise WatchSubscriptionError(path, exc) from exc
        self.state.watched[path] = watch
        self._logger.debug("ディレクトリを監視対象に追加しました: %s", path)

    def _unwatch_tree(self, path: Path) -> None:
        assert self._observer is not None
        removed = [
            watched for watched in self.state.watched if watched == path or path in watched.parents
        ]
        for watched in removed:
            watch = self.state.watched.pop(watched)
            try:
                self._observer.unschedule(watch)
            except (KeyError, OSError):
                self._logger.debug("監視の解除に失敗しました: %s", watched, exc_info=True)
        for stale in [entry for entry in self.state.last_write if path in entry.parents]:
            del self.state.last_write[stale]
        for stale in [entry for entry in self.state.signatures if path in entry.parents]:
            del self.state.signatures[stale]
        if removed:
            self._logger.info("ディレクトリを監視対象から外しました: %s", path)

    # Rendering -------------------------------------------------------------

    def _request_render(self, path: Path) -> None:
        signature = file_signature(path)
        if signature is not None:
            self.state.signatures[path] = signature
        if path in self.state.in_flight:
            self.state.pending.add(path)
            return
        self.state.in_flight.add(path)
        task = asyncio.get_running_loop().create_task(self._render(path))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _render(self, path: Path) -> None:
        try:
            while True:
                try:
                    result = await asyncio.to_thread(self._job.run, path)
                except Exception as exc:
                    self._logger.error("再レンダリング中に予期しないエラー: %s (%s)", path, exc, exc_info=exc)
                else:
                    if result.succeeded:
                        self._logger.info("書き出しました: %s", result.output_path)
                    else:
                        self._logger.error("レンダリングに失敗しました: %s: %s: %s", path, result.error_kind, result.error)
                if path not in self.state.pending:
                    break
                self.state.pending.discard(path)
        finally:
            self.state.in_flight.discard(path)


async def watch_documents(
    root: Path,
    job: RenderJob,
    *,
    extension: str = DEFAULT_SOURCE_EXTENSION,
    target: Path | None = None,
    logger: logging.Logger | None = None,
) -> None:
    """監視モードを実行するためのヘルパー。"""

    controller = WatchController(root, job, extension=extension, target=target, logger=logger)
    await controller.run()
