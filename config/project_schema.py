"""
Project YAML Descriptor Schema

Pydantic models for parsing project.yaml descriptors and package.json manifests.
Both are read loosely: unknown keys are kept and every section is optional.
"""

from typing import Optional, Dict, List, Union
from pydantic import BaseModel, Field, field_validator


class ProjectMetadataConfig(BaseModel):
    """Project metadata section"""
    name: Optional[str] = Field(None, description="Project name")
    description: Optional[str] = Field(None, description="Project description")
    created: Optional[str] = Field(None, description="Creation date (YYYY-MM-DD)")
    version: Optional[str] = Field("0.1.0", description="Project version")

    @field_validator("created", "version", mode="before")
    @classmethod
    def coerce_to_string(cls, v):
        """YAML parses bare dates and numbers into non-string values"""
        if v is None:
            return v
        return str(v)


class AppConfig(BaseModel):
    """Single app inside stack.apps"""
    framework: Optional[str] = Field(None, description="Framework identifier, e.g. next.js@15 or vite@6")
    path: str = Field(".", description="App path relative to project root")
    features: List[str] = Field(default_factory=list)
    port: Optional[int] = None

    class Config:
        extra = "allow"


class BackendConfig(BaseModel):
    """Backend section of the stack"""
    primary: Optional[str] = Field(None, description="Primary backend (convex, supabase, ...)")
    secondary: Optional[str] = None
    features: List[str] = Field(default_factory=list)

    class Config:
        extra = "allow"


class StackConfig(BaseModel):
    """Technology stack section"""
    monorepo: Optional[Union[bool, str]] = Field(None, description="Monorepo tool name, or true")
    package_manager: Optional[str] = Field(None, description="pnpm, npm, bun, ...")
    apps: Dict[str, AppConfig] = Field(default_factory=dict)
    backend: Optional[BackendConfig] = None

    class Config:
        extra = "allow"

    @property
    def is_monorepo(self) -> bool:
        return bool(self.monorepo)

    @property
    def web_framework(self) -> Optional[str]:
        web = self.apps.get("web")
        return web.framework if web else None


class ProjectDescriptor(BaseModel):
    """Root model of project.yaml"""
    project: ProjectMetadataConfig = Field(default_factory=ProjectMetadataConfig)
    stack: StackConfig = Field(default_factory=StackConfig)

    class Config:
        extra = "allow"


class PackageManifest(BaseModel):
    """The subset of package.json used for classification"""
    name: Optional[str] = None
    dependencies: Dict[str, str] = Field(default_factory=dict)
    dev_dependencies: Dict[str, str] = Field(default_factory=dict, alias="devDependencies")
    workspaces: Optional[Union[List[str], Dict[str, List[str]]]] = None

    class Config:
        extra = "allow"
        populate_by_name = True

    def has_dependency(self, package: str) -> bool:
        return package in self.dependencies or package in self.dev_dependencies
