"""Exception hierarchy for the bridge scanner.

```text
ScannerError (base)
├── DirectoryUnavailableError  -- every relay directory mirror failed
├── NoCandidatesError          -- nothing left to probe
├── SinkUnavailableError       -- bridges file cannot be opened
├── PrefsFileError             -- Tor Browser prefs.js missing or unreadable
└── BrowserNotFoundError       -- no Tor Browser launcher could be started
```

The first three are fatal and stop a run before any probing starts.
Individual dial failures are not exceptions at all; the prober absorbs them.
"""


class ScannerError(Exception):
    """Base exception for all scanner errors."""


class DirectoryUnavailableError(ScannerError):
    """Raised when the relay directory could not be fetched from any source."""

    def __init__(self, urls) -> None:
        self.urls = list(urls)
        super().__init__(f"failed to download relay data from all {len(self.urls)} sources")


class NoCandidatesError(ScannerError):
    """Raised when there are no relay candidates to test."""


class SinkUnavailableError(ScannerError):
    """Raised when the append-only bridges file cannot be opened."""


class PrefsFileError(ScannerError):
    """Raised when the Tor Browser preferences file cannot be read or written."""


class BrowserNotFoundError(ScannerError):
    """Raised when no Tor Browser launcher could be started."""


__all__ = [
    "ScannerError",
    "DirectoryUnavailableError",
    "NoCandidatesError",
    "SinkUnavailableError",
    "PrefsFileError",
    "BrowserNotFoundError",
]
