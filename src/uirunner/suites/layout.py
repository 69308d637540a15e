"""
Filesystem layout of the UI test tree.

Every app lives in its own directory under the tests root:

    <tests_root>/<app>/config.toml
    <tests_root>/<app>/<suite>/<platform><ext>          suite file
    <tests_root>/<app>/<suite>/<proj>/                  build project
    <tests_root>/<app>/<suite>/<proj>/build/...         build output

All path computation for suites, projects and built binaries lives here.
"""

from pathlib import Path
from typing import Optional

from ..models.config import SuitesConfig
from ..models.runtime import Platform, Project, Target

BUILD_DIR_NAME = "build"

# Build output locations below a project's build directory
IOS_SIMULATOR_PRODUCTS = ("iphone", "build", "Products", "Debug-iphonesimulator")
ANDROID_BINARIES = ("android", "bin")


def app_dir(tests_root: Path, app: str) -> Path:
    return tests_root / app


def suite_reference(suite: str, platform: Platform, suite_extension: str) -> str:
    """Reference of a suite file relative to the app directory, e.g. 'login/android.py'."""
    return f"{suite}/{platform.value}{suite_extension}"


def suite_file(tests_root: Path, app: str, reference: str) -> Path:
    return app_dir(tests_root, app).joinpath(*reference.split("/"))


def project_dir(tests_root: Path, app: str, suite: str, proj: str) -> Path:
    return app_dir(tests_root, app) / suite / proj


def project_for(suites_config: SuitesConfig, tests_root: Path, target: Target,
                descriptor_name: str) -> Project:
    """
    Look up the build project of a target.

    Raises:
        KeyError: If the target's suite is not declared for its platform
    """
    definition = suites_config.suite(target.platform, target.suite)
    directory = project_dir(tests_root, suites_config.app, target.suite, definition.proj)
    return Project(project_dir=directory, descriptor_file=directory / descriptor_name)


def app_binary_path(platform: Platform, directory: Path, proj: str) -> Optional[Path]:
    """
    Location of the built app for a platform, or None if it has no fixed layout.

    Only simulator/emulator builds are supported.
    """
    build_dir = directory / BUILD_DIR_NAME
    if platform is Platform.IOS:
        return build_dir.joinpath(*IOS_SIMULATOR_PRODUCTS, f"{proj}.app")
    if platform is Platform.ANDROID:
        return build_dir.joinpath(*ANDROID_BINARIES, f"{proj}.apk")
    return None
