# src/workers/converter_worker.py — v1
"""ConverterWorker: one page image -> Markdown through an LLM.

Runs as a small pool; every instance claims a different page through the
store. A failed page is retried later (retrying + retry_after) while its
budget lasts and the error is retryable, otherwise it fails for good.
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import timedelta
from typing import Callable

from pageflow.config.settings import Settings
from pageflow.core.errors import ClaimConflict, ProviderError, ValidationError
from pageflow.core.models import ConversionResult, TaskDetail
from pageflow.core.retry import classify_error, compute_retry_delay, is_retryable
from pageflow.llm.base_client import BaseLLMClient
from pageflow.llm.client_factory import create_llm_client
from pageflow.llm.models import CompletionOptions
from pageflow.logging.context import set_task_context
from pageflow.storage import layout
from pageflow.storage.task_store import SqliteTaskStore
from pageflow.workers.base import WorkerBase
from pageflow.workers.prompts import build_page_messages, clean_markdown

logger = logging.getLogger(__name__)

ClientProvider = Callable[[str], BaseLLMClient]

MAX_ERROR_LENGTH = 500


class ConverterWorker:
    """Claims pages and converts them to Markdown."""

    def __init__(
        self,
        store: SqliteTaskStore,
        settings: Settings,
        client_provider: ClientProvider | None = None,
        name: str = "converter",
    ) -> None:
        self.base = WorkerBase(store, name)
        self._store = store
        self._settings = settings
        self._client_provider = client_provider or self._default_client
        self._clients: dict[str, BaseLLMClient] = {}

    async def run(self) -> None:
        await self.base.run(
            self.process_once, self._settings.converter_poll_interval_ms / 1000
        )

    def stop(self) -> None:
        self.base.stop()

    async def process_once(self) -> bool:
        detail = await self.base.claim_detail()
        if detail is None:
            return False
        set_task_context(detail.task_id, detail.page)
        await self._process(detail)
        return True

    async def _process(self, detail: TaskDetail) -> None:
        try:
            result = await self._convert(detail)
        except asyncio.CancelledError:
            await self._store.release_detail(detail.id, self.base.worker_id)
            raise
        except Exception as e:
            await self._handle_failure(detail, e)
            return

        try:
            status = await self._store.complete_detail(
                detail.id, self.base.worker_id, result
            )
        except ClaimConflict as e:
            logger.info("Result dropped: %s", e)
            return
        logger.info(
            "Page %d converted in %dms (%d tokens); task is %s",
            detail.page, result.conversion_time_ms,
            result.input_tokens + result.output_tokens, status.name.lower(),
        )

    async def _convert(self, detail: TaskDetail) -> ConversionResult:
        task = await self._store.get_task(detail.task_id)
        if task is None:
            raise ValidationError(f"Task {detail.task_id} no longer exists")

        s = self._settings
        provider = detail.provider or task.provider or s.llm_default_provider
        model = detail.model or task.model or s.llm_default_model

        image_path = layout.page_image_path(s.resolved_data_dir, task.id, detail.page)
        image = await asyncio.to_thread(image_path.read_bytes)

        client = self._client_provider(provider)
        options = CompletionOptions(
            temperature=s.converter_temperature,
            max_tokens=s.converter_max_tokens,
        )
        t0 = time.monotonic()
        timeout_s = s.converter_timeout_ms / 1000
        try:
            response = await asyncio.wait_for(
                client.complete(model, build_page_messages(image), options),
                timeout=timeout_s,
            )
        except asyncio.TimeoutError as e:
            raise TimeoutError(f"LLM call timed out after {timeout_s:.0f}s") from e
        elapsed_ms = int((time.monotonic() - t0) * 1000)

        markdown = clean_markdown(response.content)
        if not markdown:
            raise ProviderError("LLM returned empty content", provider)
        if len(markdown) > s.converter_max_content_length:
            raise ProviderError(
                f"LLM returned {len(markdown)} characters, above the "
                f"{s.converter_max_content_length} limit",
                provider,
            )
        return ConversionResult(
            markdown=markdown,
            input_tokens=response.input_tokens,
            output_tokens=response.output_tokens,
            conversion_time_ms=elapsed_ms,
        )

    async def _handle_failure(self, detail: TaskDetail, error: Exception) -> None:
        error_type = classify_error(error)
        message = f"[{error_type}] {error}"[:MAX_ERROR_LENGTH]
        s = self._settings
        try:
            if is_retryable(error_type) and detail.retry_count < s.converter_max_retries:
                delay = compute_retry_delay(
                    s.converter_retry_base_delay_ms / 1000, detail.retry_count, error_type
                )
                retry_after = self._store.now() + timedelta(seconds=delay)
                await self._store.schedule_detail_retry(
                    detail.id, self.base.worker_id, message, retry_after
                )
                logger.warning(
                    "Page %d failed (%s), retry %d/%d in %.1fs",
                    detail.page, error_type, detail.retry_count + 1,
                    s.converter_max_retries, delay,
                )
            else:
                status = await self._store.fail_detail(
                    detail.id, self.base.worker_id, message
                )
                logger.error(
                    "Page %d failed permanently: %s; task is %s",
                    detail.page, message, status.name.lower(),
                )
        except ClaimConflict as e:
            logger.info("Failure dropped: %s", e)

    def _default_client(self, provider: str) -> BaseLLMClient:
        if provider not in self._clients:
            api_key, base_url = self._settings.provider_credentials(provider)
            self._clients[provider] = create_llm_client(provider, api_key, base_url)
        return self._clients[provider]
