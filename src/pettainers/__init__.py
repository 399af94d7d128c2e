"""pettainers - pet container toolbox.

A thin wrapper around a container engine CLI (podman by default) that
keeps one long-lived "pet" container per user around for debugging and
admin tooling.

Features:
- Image pull on first use
- Container reuse across invocations
- Optional in-container user provisioning with passwordless sudo
- Guaranteed container stop on exit
"""

__version__ = "1.0.0"
__license__ = "MIT"

from pettainers.cli import main

__all__ = ["main", "__version__"]
