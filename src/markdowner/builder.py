"""複数ドキュメントを並行レンダリングするディスパッチャー。"""

from __future__ import annotations

import asyncio
import functools
import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Sequence

from .config import BuildConfig, RenderConfig
from .errors import RenderTimeoutError
from .paths import discover_documents
from .rendering import RenderJob, RenderResult


@dataclass(slots=True)
class RenderSummary:
    """一括レンダリングの集計結果。"""

    total: int
    succeeded: int
    failed: int
    failed_paths: list[Path]
    results: list[RenderResult] = field(default_factory=list)

    @classmethod
    def from_results(cls, results: Sequence[RenderResult]) -> "RenderSummary":
        failed_paths = [result.source_path for result in results if not result.succeeded]
        return cls(
            total=len(results),
            succeeded=len(results) - len(failed_paths),
            failed=len(failed_paths),
            failed_paths=failed_paths,
            results=list(results),
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "failed_paths": [str(path) for path in self.failed_paths],
        }


class RenderDispatcher:
    """ファイルごとに RenderJob を並行実行し、完了を待って集計します。"""

    def __init__(
        self,
        config: RenderConfig,
        job: RenderJob | None = None,
        *,
        max_concurrency: int | None = None,
        timeout: float | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._logger = logger or logging.getLogger(f"{__name__}.{self.__class__.__name__}")
        self._job = job or RenderJob(config, logger=self._logger)
        self._max_concurrency = max_concurrency
        self._timeout = timeout

    @property
    def job(self) -> RenderJob:
        return self._job

    async def render_all(self, paths: Iterable[Path]) -> RenderSummary:
        path_list = [Path(path) for path in paths]
        total = len(path_list)
        self._logger.info("%d 件のファイルを検出しました。", total)
        if total == 0:
            return RenderSummary.from_results([])

        worker_count = self._determine_worker_count(total)
        semaphore = asyncio.Semaphore(worker_count)
        progress_lock = asyncio.Lock()
        completed = 0
        results: list[RenderResult | None] = [None] * total
        # 専用の executor: 終了時にタイムアウトしたスレッドを待たない
        executor = ThreadPoolExecutor(max_workers=worker_count, thread_name_prefix="markdowner-render")

        async def process(index: int, path: Path) -> None:
            nonlocal completed
            async with semaphore:
                result = await self._run_job(executor, path)
            results[index] = result
            async with progress_lock:
                completed += 1
                current = completed
            if result.succeeded:
                self._logger.info("書き出しました (%d/%d): %s", current, total, path)
            else:
                self._logger.error(
                    "レンダリングに失敗しました (%d/%d): %s: %s: %s",
                    current,
                    total,
                    path,
                    result.error_kind,
                    result.error,
                )

        try:
            await asyncio.gather(*(process(index, path) for index, path in enumerate(path_list)))
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        summary = RenderSummary.from_results([result for result in results if result is not None])
        self._logger.info(
            "SUMMARY: all %d, success %d, fail %d",
            summary.total,
            summary.succeeded,
            summary.failed,
        )
        return summary

    async def _run_job(self, executor: ThreadPoolExecutor, path: Path) -> RenderResult:
        loop = asyncio.get_running_loop()
        cancelled = threading.Event()
        work = loop.run_in_executor(executor, functools.partial(self._job.run, path, cancelled=cancelled))
        if self._timeout is None:
            return await work
        try:
            return await asyncio.wait_for(work, timeout=self._timeout)
        except asyncio.TimeoutError:
            # 実行中のジョブは書き出し前に中断する
            cancelled.set()
            error = RenderTimeoutError(path, f"{self._timeout:.1f} 秒以内にレンダリングが完了しませんでした: {path}")
            return RenderResult(source_path=path, error=error)

    def _determine_worker_count(self, total: int) -> int:
        requested = self._max_concurrency
        if requested is not None and requested > 0:
            return max(1, min(total, requested))
        # I/O 待ちが主体なので CPU 数より多めに並べる
        cpu_total = os.cpu_count() or 2
        baseline = min(32, cpu_total + 4)
        return max(1, min(total, baseline))


async def render_paths(
    paths: Iterable[Path],
    config: RenderConfig,
    *,
    max_concurrency: int | None = None,
    timeout: float | None = None,
    logger: logging.Logger | None = None,
) -> RenderSummary:
    """複数パスをまとめてレンダリングするためのヘルパー。"""

    dispatcher = RenderDispatcher(config, max_concurrency=max_concurrency, timeout=timeout, logger=logger)
    return await dispatcher.render_all(paths)


def render_documents(config: BuildConfig, logger: logging.Logger | None = None) -> RenderSummary:
    """入力パス配下の対象ドキュメントをすべてレンダリングします。"""

    paths = discover_documents(config.input_path, config.source_extension)
    return asyncio.run(
        render_paths(
            paths,
            config.render,
            max_concurrency=config.max_concurrency,
            timeout=config.render_timeout,
            logger=logger,
        )
    )
