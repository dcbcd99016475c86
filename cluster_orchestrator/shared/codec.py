"""
cluster_orchestrator/shared/codec.py
────────────────────────────────────
Scheme: turns versioned models into YAML documents and back.

A Scheme knows which (apiVersion, kind) pairs exist and which pydantic
model backs each one. Encoding a model for a group/version it was not
registered under is an error; that is how a mismatched encoder surfaces.

Document layout
────────────────
    apiVersion: cluster.orchestrator.io/v1alpha1
    kind: Node
    metadata:
      name: node-0
    spec:
      ...
    status:
      ...

Keys are emitted in model field order (sort_keys=False), so the same
object always produces byte-identical text. decode(encode(obj)) == obj
for every registered kind.

Error handling contract
────────────────────────
  EncodingError: the kind is not registered for the target version, or
                 the model could not be dumped or emitted as YAML.
                 Names the object; chains the cause.
  DecodingError: malformed YAML, unknown apiVersion/kind, or a document
                 that does not validate against its model.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple, Type

import yaml
from pydantic import BaseModel, ValidationError
from pydantic_core import PydanticSerializationError

from cluster_orchestrator.shared import models as v1alpha1


class EncodingError(Exception):
    """
    Raised when an object cannot be serialised to its versioned YAML form.

    Attributes:
        kind: Model class name of the object being encoded.
        name: metadata.name of the object, so the failing entity is obvious.
    """

    def __init__(self, kind: str, name: str, reason: str) -> None:
        self.kind = kind
        self.name = name
        super().__init__(f"could not encode {kind.lower()} {name!r}: {reason}")


class DecodingError(Exception):
    """Raised when a YAML document cannot be turned back into a versioned model."""


class Scheme:
    """Registry of (apiVersion, kind) → versioned model class."""

    def __init__(self) -> None:
        self._types: Dict[Tuple[str, str], Type[BaseModel]] = {}

    def register(self, group_version: str, kind: str, model: Type[BaseModel]) -> None:
        self._types[(group_version, kind)] = model

    def kind_for(self, model: Type[BaseModel], group_version: str) -> Optional[str]:
        for (gv, kind), registered in self._types.items():
            if gv == group_version and registered is model:
                return kind
        return None

    # ── Encoding ──────────────────────────────────────────────────────────────

    def encode(self, obj: BaseModel, group_version: str, name: Optional[str] = None) -> str:
        """
        Serialise obj as a YAML document for group_version.

        Args:
            obj:           A registered versioned model instance.
            group_version: Target apiVersion, e.g. CLUSTER_GROUP_VERSION.
            name:          Identifier used in error messages. Defaults to
                           obj.metadata.name when the model has one.

        Raises:
            EncodingError
        """
        model_name = type(obj).__name__
        if name is None:
            metadata = getattr(obj, "metadata", None)
            name = getattr(metadata, "name", "") or "<unnamed>"

        kind = self.kind_for(type(obj), group_version)
        if kind is None:
            raise EncodingError(
                model_name, name, f"kind not registered for {group_version}"
            )

        document: Dict[str, Any] = {"apiVersion": group_version, "kind": kind}
        try:
            document.update(obj.model_dump(by_alias=True, mode="json"))
            return yaml.safe_dump(document, sort_keys=False, default_flow_style=False)
        except (PydanticSerializationError, yaml.YAMLError) as err:
            raise EncodingError(model_name, name, str(err)) from err

    # ── Decoding ──────────────────────────────────────────────────────────────

    def decode(self, text: str) -> BaseModel:
        """Parse a single YAML document into its versioned model."""
        try:
            document = yaml.safe_load(text)
        except yaml.YAMLError as err:
            raise DecodingError(f"malformed YAML document: {err}") from err
        return self._from_document(document)

    def decode_all(self, text: str) -> List[BaseModel]:
        """Parse a '---' separated stream. Empty documents are skipped."""
        try:
            documents = list(yaml.safe_load_all(text))
        except yaml.YAMLError as err:
            raise DecodingError(f"malformed YAML stream: {err}") from err
        return [self._from_document(doc) for doc in documents if doc is not None]

    def _from_document(self, document: Any) -> BaseModel:
        if not isinstance(document, dict):
            raise DecodingError(f"expected a mapping, got {type(document).__name__}")
        body = dict(document)
        group_version = body.pop("apiVersion", None)
        kind = body.pop("kind", None)
        model = self._types.get((group_version, kind))
        if model is None:
            raise DecodingError(f"unknown object type {group_version}/{kind}")
        try:
            return model.model_validate(body)
        except ValidationError as err:
            raise DecodingError(f"invalid {kind} document: {err}") from err


def build_scheme() -> Scheme:
    """A scheme with every v1alpha1 kind registered."""
    scheme = Scheme()
    scheme.register(v1alpha1.CLUSTER_GROUP_VERSION, "Node", v1alpha1.Node)
    scheme.register(v1alpha1.CLUSTER_GROUP_VERSION, "Cluster", v1alpha1.Cluster)
    scheme.register(v1alpha1.INFRA_GROUP_VERSION, "Hypervisor", v1alpha1.Hypervisor)
    return scheme


# ── Module-level scheme (read-only after import, one instance is fine) ─────────
_default_scheme = build_scheme()


def default_scheme() -> Scheme:
    return _default_scheme
