"""Line-editing history for the chat shell, backed by prompt_toolkit."""

from __future__ import annotations

from prompt_toolkit.history import FileHistory, History, InMemoryHistory


class _FilteredHistory:
    """Mixin that drops repeated and/or space-prefixed entries."""

    ignore_dups = False
    ignore_space = False

    def append_string(self, string: str) -> None:
        if self.ignore_space and string.startswith(" "):
            return
        if self.ignore_dups:
            previous = self.get_strings()  # oldest first
            if previous and previous[-1] == string:
                return
        super().append_string(string)  # type: ignore[misc]


class FilteredFileHistory(_FilteredHistory, FileHistory):
    pass


class FilteredInMemoryHistory(_FilteredHistory, InMemoryHistory):
    pass


def make_history(
    histfile: str | None,
    ignore_dups: bool = False,
    ignore_space: bool = False,
) -> History:
    """History persisted to ``histfile``, or kept in memory when unset."""
    history: _FilteredHistory
    if histfile:
        history = FilteredFileHistory(histfile)
    else:
        history = FilteredInMemoryHistory()
    history.ignore_dups = ignore_dups
    history.ignore_space = ignore_space
    return history  # type: ignore[return-value]
