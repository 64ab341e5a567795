"""
Search orchestration.

SearchEngine validates a request, resolves its roots, runs ripgrep and,
when ripgrep cannot run or fails, the in-process fallback walker. Only one
search is active per engine: starting a new one cancels the previous one,
which then returns no results.

search() never raises for bad input, missing roots or process failures;
those degrade to an empty result list or to the fallback path.
"""

import logging
from typing import List, Optional, Sequence

from ..config import Config
from ..errors import (
    InputRejectedError,
    ProcessAbnormalExitError,
    ProcessUnavailableError,
)
from ..filesystem import FileSystemProvider
from ..models import RootSpec, SearchOptions, SearchRequest, SearchResult
from ..utils.exception_logger import log_swallowed
from .fallback import FallbackWalker, Limiter
from .file_mask import validate_file_mask
from .query import CompiledQuery, compile_query, is_searchable_query
from .ripgrep import RipgrepSearch, get_ripgrep_command_candidates
from .roots import filter_results_to_roots, resolve_search_roots

logger = logging.getLogger(__name__)

BACKEND_RIPGREP = "ripgrep"
BACKEND_FALLBACK = "fallback"


class CancellationToken:
    """Cancellation handle for one search call."""

    def __init__(self) -> None:
        self._cancelled = False
        self._process_search: Optional[RipgrepSearch] = None

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    def attach(self, process_search: RipgrepSearch) -> None:
        self._process_search = process_search

    async def cancel(self) -> None:
        """Mark cancelled and wait for any running ripgrep process to exit."""
        self._cancelled = True
        if self._process_search is not None:
            await self._process_search.cancel()


class SearchEngine:
    """Runs searches against a FileSystemProvider."""

    def __init__(self, provider: FileSystemProvider, config: Optional[Config] = None):
        self.provider = provider
        self.config = config or Config()
        self.last_backend: Optional[str] = None
        self._active: Optional[CancellationToken] = None

    @property
    def is_searching(self) -> bool:
        return self._active is not None

    async def cancel(self) -> None:
        """Cancel the active search, if any, and wait for its teardown."""
        token = self._active
        self._active = None
        if token is not None:
            await token.cancel()

    async def search(self, request: SearchRequest) -> List[SearchResult]:
        # Swap tokens before the first await so no two searches overlap
        previous = self._active
        token = CancellationToken()
        self._active = token
        try:
            if previous is not None:
                await previous.cancel()
            if token.is_cancelled:
                return []
            self.last_backend = None
            return await self._search(request, token)
        finally:
            if self._active is token:
                self._active = None

    async def _search(self, request: SearchRequest, token: CancellationToken) -> List[SearchResult]:
        if not is_searchable_query(request.query):
            return []

        options = request.options
        mask_validation = validate_file_mask(options.file_mask)
        if not mask_validation.is_valid:
            logger.warning(f"File mask validation failed: {mask_validation.message}")
            options = options.with_file_mask("")

        try:
            compiled = compile_query(request.query, options)
        except InputRejectedError as e:
            logger.warning(f"Search rejected: {e}")
            return []

        roots = await resolve_search_roots(
            self.provider,
            request.scope,
            request.directory_path,
            request.module_path,
            request.file_path,
        )
        if token.is_cancelled or not roots:
            return []

        return await self._run(request, options, compiled, roots, token)

    async def _run(
        self,
        request: SearchRequest,
        options: SearchOptions,
        compiled: CompiledQuery,
        roots: Sequence[RootSpec],
        token: CancellationToken,
    ) -> List[SearchResult]:
        max_results = request.effective_max_results

        if self.config.use_ripgrep:
            process_search = RipgrepSearch(
                compiled,
                [r.fs_path for r in roots],
                max_results,
                get_ripgrep_command_candidates(self.config),
                workspace_folders=self.provider.workspace_folders,
                file_mask=options.file_mask,
                smart_excludes_enabled=request.smart_excludes_enabled,
                exclude_dirs=self.config.exclude_dirs,
            )
            token.attach(process_search)
            try:
                results = await process_search.run()
                if token.is_cancelled:
                    return []
                self.last_backend = BACKEND_RIPGREP
                return filter_results_to_roots(results, roots)[:max_results]
            except ProcessUnavailableError as e:
                logger.warning(f"ripgrep unavailable, using fallback search: {e}")
            except ProcessAbnormalExitError as e:
                logger.error(f"Error during ripgrep search: {e}")
                log_swallowed(e, query=request.query, backend=BACKEND_RIPGREP)
            except OSError as e:
                logger.error(f"Failed to start ripgrep: {e}")
                log_swallowed(e, query=request.query, backend=BACKEND_RIPGREP)

        if token.is_cancelled:
            return []

        walker = FallbackWalker(
            self.provider,
            compiled,
            max_results,
            file_mask=options.file_mask,
            smart_excludes_enabled=request.smart_excludes_enabled,
            exclude_dirs=self.config.exclude_dirs,
            binary_extensions=self.config.binary_extensions,
            max_file_size=self.config.max_file_size,
            per_file_time_budget_ms=self.config.per_file_time_budget_ms,
            limiter=Limiter(self.config.fallback_concurrency),
            is_cancelled=lambda: token.is_cancelled,
        )
        try:
            results = await walker.search_roots(roots)
        except Exception as e:
            logger.error(f"Fallback search failed: {e}")
            log_swallowed(e, query=request.query, backend=BACKEND_FALLBACK)
            return []

        if token.is_cancelled:
            return []
        self.last_backend = BACKEND_FALLBACK
        return filter_results_to_roots(results, roots)
