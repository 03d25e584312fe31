"""Reading ``.vsix`` packages."""

import json
import logging
import zipfile
from pathlib import Path

logger = logging.getLogger(__name__)

PACKAGE_ENTRY = "extension/package.json"


class VsixError(Exception):
    """Raised when a package cannot be read."""

    pass


def read_package_json(vsix_path: Path) -> dict:
    """Load ``extension/package.json`` from a package.

    Raises:
        VsixError: If the archive or its manifest cannot be read.
    """
    try:
        with zipfile.ZipFile(vsix_path) as archive:
            with archive.open(PACKAGE_ENTRY) as f:
                data = json.load(f)
    except KeyError as e:
        raise VsixError(f"{PACKAGE_ENTRY} not found in {vsix_path.name}") from e
    except zipfile.BadZipFile as e:
        raise VsixError(f"Cannot open the zip file {vsix_path.name}") from e
    except (OSError, ValueError) as e:
        raise VsixError(f"Cannot read {PACKAGE_ENTRY} of {vsix_path.name}: {e}") from e

    if not isinstance(data, dict):
        raise VsixError(f"Invalid {PACKAGE_ENTRY} in {vsix_path.name}")
    return data


def extract_extension_name(vsix_path: Path) -> str:
    """Canonical ``publisher.name`` declared by a package.

    Raises:
        VsixError: If the manifest lacks a publisher or a name.
    """
    package = read_package_json(vsix_path)
    publisher = package.get("publisher")
    name = package.get("name")

    if not (isinstance(publisher, str) and publisher.strip() and isinstance(name, str) and name.strip()):
        raise VsixError(f"{vsix_path.name} does not declare a publisher and a name")

    full_name = f"{publisher}.{name}"
    logger.debug("%s identifies as %s", vsix_path.name, full_name)
    return full_name
