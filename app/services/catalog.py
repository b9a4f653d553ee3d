"""Closed catalogue of chat services and the policy each one applies to uploads."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable

from app.core.exceptions import NotFoundError, ServiceUnavailableError
from app.models.service import Service
from app.services.extraction import DocumentFormat
from app.services.pricing import flat_credits, required_credits


class ServiceKind(str, Enum):
    ORIGINALITY = "service-button-originality"
    TURNITIN = "service-button-turnitin"


@dataclass(frozen=True)
class ServicePolicy:
    kind: ServiceKind
    name: str
    accepted_formats: frozenset[DocumentFormat]
    price: Callable[[int], int]
    requires_confirmation: bool
    format_error_key: str
    upload_prompt_key: str
    ledger_reason: str


POLICIES: dict[ServiceKind, ServicePolicy] = {
    ServiceKind.ORIGINALITY: ServicePolicy(
        kind=ServiceKind.ORIGINALITY,
        name="originality",
        accepted_formats=frozenset({DocumentFormat.DOCX, DocumentFormat.DOC}),
        price=required_credits,
        requires_confirmation=True,
        format_error_key="originality_format_error",
        upload_prompt_key="originality_upload_prompt",
        ledger_reason="originality_scan",
    ),
    ServiceKind.TURNITIN: ServicePolicy(
        kind=ServiceKind.TURNITIN,
        name="turnitin",
        accepted_formats=frozenset({DocumentFormat.DOCX}),
        price=flat_credits,
        requires_confirmation=False,
        format_error_key="turnitin_format_error",
        upload_prompt_key="turnitin_upload_prompt",
        ledger_reason="document_upload",
    ),
}

DEFAULT_DESCRIPTIONS = {
    ServiceKind.ORIGINALITY: "AI content detection with an originality score",
    ServiceKind.TURNITIN: "Similarity report document upload",
}


def parse_kind(button_id: str | None) -> ServiceKind | None:
    try:
        return ServiceKind(button_id) if button_id else None
    except ValueError:
        return None


def policy_for(kind: ServiceKind) -> ServicePolicy:
    return POLICIES[kind]


async def get_service(kind: ServiceKind) -> Service | None:
    return await Service.find_one(Service.button_id == kind.value)


async def list_services() -> list[Service]:
    return await Service.find_all().sort("+name").to_list()


async def ensure_available(kind: ServiceKind) -> Service:
    """Hard gate: a missing or stopped service row blocks uploads."""
    service = await get_service(kind)
    if not service:
        raise NotFoundError("Service not found")
    if not service.status:
        raise ServiceUnavailableError()
    return service


async def seed_services() -> None:
    """Create a row for every known service kind; existing rows are left alone."""
    for kind, policy in POLICIES.items():
        if await get_service(kind) is None:
            await Service(
                name=policy.name,
                button_id=kind.value,
                status=True,
                description=DEFAULT_DESCRIPTIONS[kind],
            ).insert()


async def set_status(name: str, status: bool, note: str | None = None) -> Service | None:
    service = await get_service_by_name(name)
    if not service:
        return None
    await service.set({Service.status: status, Service.note: note, Service.updated_at: datetime.utcnow()})
    return service


async def get_service_by_name(name: str) -> Service | None:
    return await Service.find_one(Service.name == name)
