"""
intunecycle: version lifecycle management for Microsoft Intune apps.

Keeps a bounded, ordinally named history of application versions in Intune
while new releases are published:

    Google Chrome          <- current
    Google Chrome (N-1)
    Google Chrome (N-2)

When a new version is uploaded, group assignments and dependency links are
moved onto it, older versions shift one slot, the family is renamed, and
versions beyond the retention count are deleted unless other apps still
depend on them.

Quick Start
-----------
Validate a recipe:

    $ intunecycle validate recipes/rstudio.yaml

Publish a version that was just uploaded:

    $ intunecycle publish recipes/rstudio.yaml --app-id <id>

Package Structure
-----------------
cli : module
    Command-line interface with argparse.
core : module
    High-level orchestration functions.
config : package
    YAML configuration loading and merging.
versioning : package
    Version ordering and version locks.
lifecycle : package
    Family resolution, migration and rotation.
directory : package
    Directory service contract and Microsoft Graph client.
auth : package
    Graph credentials and token caching.
policy : package
    Publish policy built from recipe settings.

Public API
----------
    from intunecycle.core import publish_app, publish_batch
    from intunecycle.validation import validate_recipe
    from intunecycle.config import load_effective_config
    from intunecycle.versioning import VersionKey, compare_versions, is_locked
"""

__version__ = "0.1.0"
__author__ = "Roger Cibrian"
__license__ = "Apache-2.0"
__description__ = "Version lifecycle management for Microsoft Intune apps"

# Re-export commonly used functions for convenience
from intunecycle.config import load_effective_config
from intunecycle.core import publish_app, publish_batch
from intunecycle.validation import validate_recipe
from intunecycle.versioning import VersionKey, compare_versions, is_locked

__all__ = [
    "__version__",
    "__author__",
    "__license__",
    "__description__",
    "publish_app",
    "publish_batch",
    "validate_recipe",
    "load_effective_config",
    "VersionKey",
    "compare_versions",
    "is_locked",
]
