"""
Replace engine.

Replacements only ever touch files below the workspace roots (the check is
skipped when no workspace is open, i.e. ad hoc file editing). replace_all
re-runs the search for fresh coordinates, validates every target before
mutating anything, applies all replacements as one atomic edit and then
saves each affected file; a failed save is logged but does not undo the
edit. Neither operation raises: outcomes are reported through a Notifier.
"""

import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional

from .errors import EditApplyError, SecurityViolationError
from .filesystem import WorkspaceEdit
from .models import SearchOptions, SearchRequest, SearchScope
from .search.engine import SearchEngine
from .security import ensure_uri_in_workspace, uri_to_fs_path
from .utils.exception_logger import log_swallowed

logger = logging.getLogger(__name__)

RefreshCallback = Callable[[], Awaitable[None]]

NOTHING_TO_REPLACE = "No occurrences found to replace."


class Notifier:
    """User-visible messages. The default implementation only logs."""

    def show_info(self, message: str) -> None:
        logger.info(message)

    def show_error(self, message: str) -> None:
        logger.error(message)


@dataclass
class ReplaceOutcome:
    success: bool
    replaced: int = 0
    files: List[str] = field(default_factory=list)
    failed_saves: List[str] = field(default_factory=list)
    message: str = ""


class ReplaceEngine:
    """Applies replacements at search result coordinates."""

    def __init__(self, engine: SearchEngine, notifier: Optional[Notifier] = None):
        self.engine = engine
        self.provider = engine.provider
        self.notifier = notifier or Notifier()

    def _resolve_target(self, uri: str) -> str:
        workspace_folders = self.provider.workspace_folders
        if not workspace_folders:
            return uri_to_fs_path(uri)
        return ensure_uri_in_workspace(uri, workspace_folders)

    async def replace_one(
        self,
        uri: str,
        line: int,
        character: int,
        length: int,
        replacement_text: str,
    ) -> bool:
        """Replace a single match and save the file."""
        try:
            path = self._resolve_target(uri)
            edit = WorkspaceEdit()
            edit.replace(path, line, character, length, replacement_text)
            if not await self.provider.apply_edit(edit):
                raise EditApplyError(f"Failed to apply replacement in {path}")
            # Persist so that disk-based searches see the change
            await self.provider.save_document(path)
            return True
        except Exception as e:
            logger.error(f"Error replacing text: {e}")
            log_swallowed(e, operation="replace_one", uri=uri, line=line)
            self.notifier.show_error(f"Could not replace text: {e}")
            return False

    async def replace_all(
        self,
        query: str,
        replacement_text: str,
        scope: SearchScope,
        options: SearchOptions,
        directory_path: Optional[str] = None,
        module_path: Optional[str] = None,
        file_path: Optional[str] = None,
        on_refresh: Optional[RefreshCallback] = None,
        max_results: Optional[int] = None,
        smart_excludes_enabled: Optional[bool] = None,
    ) -> ReplaceOutcome:
        """Replace every current occurrence of ``query`` in scope."""
        config = self.engine.config
        request = SearchRequest(
            query=query,
            scope=scope,
            options=options,
            directory_path=directory_path,
            module_path=module_path,
            file_path=file_path,
            max_results=max_results or config.max_results,
            smart_excludes_enabled=(
                config.smart_excludes_enabled
                if smart_excludes_enabled is None
                else smart_excludes_enabled
            ),
        )

        try:
            results = await self.engine.search(request)
            if not results:
                message = NOTHING_TO_REPLACE
                self.notifier.show_info(message)
                return ReplaceOutcome(success=False, message=message)

            targets = [self._resolve_target(result.uri) for result in results]

            edit = WorkspaceEdit()
            affected: Dict[str, None] = {}
            for result, path in zip(results, targets):
                edit.replace(path, result.line, result.character, result.length, replacement_text)
                affected.setdefault(path, None)

            if not await self.provider.apply_edit(edit):
                message = "Failed to apply replacements."
                self.notifier.show_error(message)
                return ReplaceOutcome(success=False, message=message)
        except SecurityViolationError as e:
            logger.error(f"Replace aborted: {e}")
            log_swallowed(e, operation="replace_all", query=query)
            message = f"Replace aborted, target outside workspace: {e.target}"
            self.notifier.show_error(message)
            return ReplaceOutcome(success=False, message=message)
        except Exception as e:
            logger.error(f"Error replacing all: {e}")
            log_swallowed(e, operation="replace_all", query=query)
            message = f"Could not replace all: {e}"
            self.notifier.show_error(message)
            return ReplaceOutcome(success=False, message=message)

        failed_saves: List[str] = []
        for path in affected:
            try:
                await self.provider.save_document(path)
            except Exception as e:
                logger.error(f"Failed to save {path}: {e}")
                log_swallowed(e, operation="save_document", path=path)
                failed_saves.append(path)

        message = f"Replaced {len(results)} occurrences."
        self.notifier.show_info(message)

        if on_refresh is not None:
            try:
                await on_refresh()
            except Exception as e:
                logger.error(f"Refresh after replace failed: {e}")
                log_swallowed(e, operation="refresh")

        return ReplaceOutcome(
            success=True,
            replaced=len(results),
            files=list(affected),
            failed_saves=failed_saves,
            message=message,
        )
