"""
Descriptor Loader

Loads project.yaml descriptors and package.json manifests and classifies the
project they describe.
"""

import json
import yaml
from dataclasses import dataclass
from pathlib import Path
from typing import Union
from pydantic import ValidationError

from config.project_schema import ProjectDescriptor, PackageManifest
from models.project_models import ProjectTemplate


DESCRIPTOR_FILENAME = "project.yaml"
MANIFEST_FILENAME = "package.json"


class ConfigLoadError(Exception):
    """Exception raised when a descriptor or manifest cannot be loaded"""
    pass


@dataclass(frozen=True)
class Recognized:
    """Classification succeeded"""
    template: ProjectTemplate
    backend: str = "none"


@dataclass(frozen=True)
class Unrecognized:
    """The file was readable but matched no known template"""
    reason: str
    backend: str = "none"


ClassificationResult = Union[Recognized, Unrecognized]


def load_project_descriptor(yaml_path: Path) -> ProjectDescriptor:
    """
    Load and parse a project.yaml file

    Args:
        yaml_path: Path to project.yaml

    Returns:
        ProjectDescriptor object

    Raises:
        ConfigLoadError: If the file cannot be read, parsed or validated
    """
    if not yaml_path.exists():
        raise ConfigLoadError(f"Descriptor not found: {yaml_path}")

    try:
        with open(yaml_path, 'r', encoding='utf-8') as f:
            yaml_data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigLoadError(f"Invalid YAML format in {yaml_path}: {e}")
    except OSError as e:
        raise ConfigLoadError(f"Failed to read {yaml_path}: {e}")

    if yaml_data is None:
        yaml_data = {}
    if not isinstance(yaml_data, dict):
        raise ConfigLoadError(f"Descriptor root must be a mapping: {yaml_path}")

    try:
        return ProjectDescriptor(**yaml_data)
    except ValidationError as e:
        error_messages = []
        for error in e.errors():
            loc = ".".join(str(x) for x in error['loc'])
            error_messages.append(f"  {loc}: {error['msg']}")

        raise ConfigLoadError(
            f"Descriptor validation failed in {yaml_path}:\n" +
            "\n".join(error_messages)
        )


def load_package_manifest(json_path: Path) -> PackageManifest:
    """
    Load a package.json manifest

    Raises:
        ConfigLoadError: If the file cannot be read or is not a JSON object
    """
    try:
        with open(json_path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigLoadError(f"Invalid JSON in {json_path}: {e}")
    except OSError as e:
        raise ConfigLoadError(f"Failed to read {json_path}: {e}")

    if not isinstance(data, dict):
        raise ConfigLoadError(f"Manifest root must be an object: {json_path}")

    try:
        return PackageManifest(**data)
    except ValidationError as e:
        raise ConfigLoadError(f"Unsupported manifest layout in {json_path}: {e.error_count()} error(s)")


def classify_descriptor(descriptor: ProjectDescriptor) -> ClassificationResult:
    """
    Classify a project from its descriptor.

    The explicit monorepo flag wins, then the web app framework is matched
    against known substrings.
    """
    stack = descriptor.stack
    backend = "none"
    if stack.backend and stack.backend.primary:
        backend = stack.backend.primary

    if stack.is_monorepo:
        return Recognized(ProjectTemplate.MONOREPO, backend)

    framework = stack.web_framework
    if framework:
        lowered = framework.lower()
        if "next" in lowered:
            return Recognized(ProjectTemplate.NEXT, backend)
        if "vite" in lowered:
            return Recognized(ProjectTemplate.VITE, backend)
        return Unrecognized(f"unknown framework '{framework}'", backend)

    return Unrecognized("no monorepo flag or web framework", backend)


def classify_manifest(manifest: PackageManifest, project_dir: Path) -> ClassificationResult:
    """Classify a project from the dependency keys of its package.json."""
    if manifest.has_dependency("next"):
        return Recognized(ProjectTemplate.NEXT_JS)
    if manifest.has_dependency("vite"):
        return Recognized(ProjectTemplate.VITE)
    if manifest.has_dependency("expo"):
        return Recognized(ProjectTemplate.EXPO)
    if manifest.workspaces or (project_dir / "turbo.json").exists():
        return Recognized(ProjectTemplate.MONOREPO)
    return Recognized(ProjectTemplate.NODE)


def classify_project(project_dir: Path, has_descriptor: bool) -> Recognized:
    """
    Classify a project directory, falling back from descriptor to manifest.

    Returns:
        Recognized result; unreadable inputs resolve to GENERIC (descriptor
        present) or UNKNOWN (nothing readable)
    """
    if has_descriptor:
        try:
            result = classify_descriptor(load_project_descriptor(project_dir / DESCRIPTOR_FILENAME))
        except ConfigLoadError:
            return Recognized(ProjectTemplate.GENERIC)
        if isinstance(result, Unrecognized):
            return Recognized(ProjectTemplate.GENERIC, result.backend)
        return result

    manifest_path = project_dir / MANIFEST_FILENAME
    if not manifest_path.exists():
        return Recognized(ProjectTemplate.UNKNOWN)

    try:
        manifest = load_package_manifest(manifest_path)
    except ConfigLoadError:
        return Recognized(ProjectTemplate.UNKNOWN)

    result = classify_manifest(manifest, project_dir)
    if isinstance(result, Unrecognized):
        return Recognized(ProjectTemplate.UNKNOWN)
    return result
