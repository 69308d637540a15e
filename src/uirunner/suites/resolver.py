"""
Suite resolution.

Turns a requested suite/platform selection into the ordered list of targets
of a run, validating every suite file against the test tree.
"""

import logging
from pathlib import Path, PurePosixPath
from typing import Iterable, List, Optional

from ..models.config import SuitesConfig
from ..models.runtime import Platform, Target
from ..validation import ResolutionError
from .layout import app_dir, suite_file, suite_reference

logger = logging.getLogger(__name__)


def parse_platform(value: str) -> Platform:
    """
    Convert a platform identifier into a Platform.

    Raises:
        ResolutionError: If the identifier is not supported
    """
    try:
        return Platform(value)
    except ValueError:
        raise ResolutionError(
            f"'{value}' is not a valid platform; expected one of {Platform.identifiers()}",
            field_name="platform",
            value=value,
        )


def _enumerate_references(suites_config: SuitesConfig, platform: Optional[Platform],
                          suite_extension: str) -> List[str]:
    references = []
    for configured in suites_config.platforms():
        if platform is not None and configured is not platform:
            continue
        for suite in suites_config.suites_for(configured):
            references.append(suite_reference(suite, configured, suite_extension))
    return references


def _expand_requests(app: str, suites_config: SuitesConfig, requested: Iterable[str],
                     platform: Optional[Platform], suite_extension: str) -> List[str]:
    references = []
    for entry in requested:
        if "/" in entry:
            references.append(entry)
            continue

        declared_on = [p for p in suites_config.platforms() if entry in suites_config.suites_for(p)]
        if not declared_on:
            raise ResolutionError(
                f"Suite '{entry}' is not declared in the configuration of '{app}'",
                field_name="suites",
                value=entry,
                suite=entry,
            )
        selected = [p for p in declared_on if platform is None or p is platform]
        if not selected:
            logger.info(f"Suite '{entry}' has no '{platform.value}' variant; skipping")
        references.extend(suite_reference(entry, p, suite_extension) for p in selected)
    return references


def _resolve_reference(app: str, suites_config: SuitesConfig, tests_root: Path,
                       reference: str) -> Target:
    parts = PurePosixPath(reference).parts
    path = suite_file(tests_root, app, reference)

    if not path.is_file():
        raise ResolutionError(
            f"'{reference}' doesn't exist in '{app_dir(tests_root, app)}'",
            field_name="suites",
            value=reference,
            suite=parts[0] if parts else reference,
        )
    if len(parts) != 2:
        raise ResolutionError(
            f"'{reference}' must have the form '<suite>/<platform><extension>'",
            field_name="suites",
            value=reference,
        )

    suite = parts[0]
    token = PurePosixPath(parts[1]).stem
    if token not in Platform.identifiers():
        raise ResolutionError(
            f"{reference}: '{token}' is not a valid platform.",
            field_name="suites",
            value=reference,
            suite=suite,
            platform=token,
        )
    platform = Platform(token)

    if suite not in suites_config.suites_for(platform):
        raise ResolutionError(
            f"{reference}: suite '{suite}' is not declared for '{platform.value}' in the configuration of '{app}'",
            field_name="suites",
            value=reference,
            suite=suite,
            platform=platform.value,
        )

    return Target(suite=suite, platform=platform, source_path=path.absolute())


def resolve_targets(
    app: str,
    suites_config: SuitesConfig,
    tests_root: Path,
    suites: Optional[List[str]] = None,
    platform: Optional[str] = None,
    suite_extension: str = ".py",
) -> List[Target]:
    """
    Resolve a suite selection into targets.

    Without an explicit selection every configured (platform, suite) pair is
    used, in configuration order, restricted to `platform` when given. An
    explicit selection is used verbatim: entries are suite file references
    ('login/android.py') or bare suite names, which expand to every platform
    declaring the suite.

    Args:
        app: App directory name under the tests root
        suites_config: The app's suite configuration
        tests_root: Root of the UI test tree
        suites: Requested suites, or None/empty for all
        platform: Platform identifier restricting enumeration
        suite_extension: Extension of suite files

    Returns:
        Targets in request/configuration order without duplicates

    Raises:
        ResolutionError: On missing suite files, invalid platforms or undeclared suites
    """
    platform_filter = parse_platform(platform) if platform else None

    if suites:
        references = _expand_requests(app, suites_config, suites, platform_filter, suite_extension)
    else:
        references = _enumerate_references(suites_config, platform_filter, suite_extension)

    targets = []
    seen = set()
    for reference in references:
        target = _resolve_reference(app, suites_config, tests_root, reference)
        if target.key in seen:
            logger.warning(f"Suite {target} requested more than once; ignoring duplicate")
            continue
        seen.add(target.key)
        targets.append(target)

    logger.info(f"Resolved {len(targets)} suite targets for '{app}'")
    return targets
