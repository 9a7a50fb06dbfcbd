"""Scan every commit of a git repository for leaked secrets.

danglescan helps you:
- Find commits that no branch, tag, HEAD or reflog can reach
- Expose them to ref-based secret scanners through temporary refs
- Run gitleaks or trufflehog over the whole history
- Remove the temporary refs again, whatever the scan outcome
"""

__version__ = "0.1.0"

from danglescan.config import ScanConfig
from danglescan.orchestrator import RunReport, ScanOrchestrator

__all__ = ["RunReport", "ScanConfig", "ScanOrchestrator", "__version__"]
