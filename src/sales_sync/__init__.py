"""Sales ledger synchroniser.

Exposes the high-level ``run_sync`` API and the two entry points, the sweep
orchestrator and the webhook receiver, for programmatic use.
"""

from .runner import SyncOrchestrator, run_sync  # Pull path
from .webhook import WebhookReceiver  # Push path

__all__ = ["SyncOrchestrator", "WebhookReceiver", "run_sync"]
