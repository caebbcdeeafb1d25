"""Loading of ArgoCD ``Application`` manifests from disk."""

from __future__ import annotations

from pathlib import Path

import msgspec
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from iotctl.validation import ManifestError

YAML_VERSION = (1, 2)
APPLICATION_API_GROUP = "argoproj.io/"
APPLICATION_KIND = "Application"


class ObjectMeta(msgspec.Struct, kw_only=True):
    """The subset of Kubernetes metadata iotctl needs."""

    name: str
    namespace: str | None = None


class ApplicationManifest(msgspec.Struct, kw_only=True):
    """An ArgoCD Application as found in the repository's ``confs`` folder.

    Attributes
    ----------
    api_version : str
        Must belong to the ``argoproj.io`` API group.
    kind : str
        Must be ``Application``.
    metadata : ObjectMeta
        Name and optional namespace of the Application.
    spec : dict
        Left opaque; ArgoCD validates it on apply.

    """

    api_version: str = msgspec.field(name="apiVersion")
    kind: str
    metadata: ObjectMeta
    spec: dict[str, object] = msgspec.field(default_factory=dict)

    @property
    def name(self) -> str:
        """Return the Application name."""
        return self.metadata.name


def _yaml() -> YAML:
    yaml = YAML(typ="safe")
    yaml.version = YAML_VERSION
    yaml.allow_duplicate_keys = False
    return yaml


def load_application(path: Path | str) -> ApplicationManifest:
    """Parse and validate an Application manifest file.

    Raises
    ------
    ManifestError
        If the file cannot be read or parsed, or does not describe an ArgoCD
        Application.

    """
    path_obj = Path(path)
    try:
        loaded = _yaml().load(path_obj.read_text(encoding="utf-8"))
    except (OSError, YAMLError) as exc:
        msg = f"failed to read {path_obj}: {exc}"
        raise ManifestError(msg) from exc

    if loaded is None:
        msg = f"{path_obj} is empty"
        raise ManifestError(msg)

    try:
        manifest = msgspec.convert(loaded, type=ApplicationManifest)
    except msgspec.ValidationError as exc:
        msg = f"{path_obj} is not a valid manifest: {exc}"
        raise ManifestError(msg) from exc

    if manifest.kind != APPLICATION_KIND or not manifest.api_version.startswith(
        APPLICATION_API_GROUP
    ):
        msg = (
            f"{path_obj} describes {manifest.api_version}/{manifest.kind}, "
            f"expected an {APPLICATION_API_GROUP} {APPLICATION_KIND}"
        )
        raise ManifestError(msg)
    return manifest
