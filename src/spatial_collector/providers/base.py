"""Provider handler interface and product variants.

Each product group has one ``ProviderHandler`` implementation that knows how
to classify a record into its variant, resolve the credential, fetch the
reference checksum and assemble dataset URLs and file names. The pipeline only
talks to this interface.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any, ClassVar, Protocol, Union

from spatial_collector.config import Settings
from spatial_collector.records import DatasetTargets, RecordPlan
from spatial_collector.session import Credential, SessionStore
from spatial_collector.transfer import DownloadResult

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class SentinelVariant:
    hub: str
    gnss: bool = False


@dataclasses.dataclass(frozen=True)
class LandsatVariant:
    level: str | None
    espa_item: Mapping[str, Any] | None = None

    @property
    def needs_processing(self) -> bool:
        """Higher-level products are produced on demand by ESPA."""
        return self.level is not None and self.level != "l1"


@dataclasses.dataclass(frozen=True)
class ModisVariant:
    pass


@dataclasses.dataclass(frozen=True)
class SrtmVariant:
    pass


@dataclasses.dataclass(frozen=True)
class UnknownVariant:
    product_group: str


ProductVariant = Union[SentinelVariant, LandsatVariant, ModisVariant, SrtmVariant, UnknownVariant]


class MetadataClient(Protocol):
    def get_text(self, url: str, auth: tuple[str, str] | None = None) -> str: ...

    def get_json(self, url: str, auth: tuple[str, str] | None = None) -> Any: ...

    def download(
        self, url: str, out_path: Path, auth: tuple[str, str] | None = None
    ) -> DownloadResult: ...


@dataclasses.dataclass(frozen=True)
class ProviderContext:
    settings: Settings
    session: SessionStore
    client: MetadataClient
    hub: str = "auto"


class ProviderHandler:
    """Base handler. Subclasses set ``group`` and override what their provider needs."""

    group: ClassVar[str] = ""
    required_logins: ClassVar[tuple[str, ...]] = ()
    # Whether the resolved credential is passed to the dataset transfer
    authenticated_transfer: ClassVar[bool] = False

    def variant(self, record: Mapping[str, Any], hub: str) -> ProductVariant:
        raise NotImplementedError

    def prepare(self, plans: Sequence[RecordPlan], ctx: ProviderContext) -> list[RecordPlan]:
        """Extra resolution round over the available plans of this group."""
        return list(plans)

    def resolve_credential(self, plan: RecordPlan, ctx: ProviderContext) -> Credential | None:
        return None

    def resolve_checksum(self, plan: RecordPlan, ctx: ProviderContext) -> str | None:
        return None

    def assemble(self, plan: RecordPlan, ctx: ProviderContext) -> DatasetTargets | None:
        raise NotImplementedError

    def transfer_auth(self, plan: RecordPlan) -> tuple[str, str] | None:
        if self.authenticated_transfer and plan.credential is not None:
            return plan.credential.as_auth()
        return None


class UnknownProviderHandler(ProviderHandler):
    """Fallback for product groups without a handler: nothing resolves."""

    def variant(self, record: Mapping[str, Any], hub: str) -> ProductVariant:
        return UnknownVariant(str(record.get("product_group")))

    def assemble(self, plan: RecordPlan, ctx: ProviderContext) -> DatasetTargets | None:
        logger.warning(
            "%s No download rule for product group '%s' of record '%s'.",
            plan.label,
            plan.product_group,
            plan.name,
        )
        return None


def target_path(plan: RecordPlan, filename: str) -> Path:
    if plan.directory is None:
        raise ValueError(f"No output directory assigned to record {plan.record_id}")
    return plan.directory / filename
