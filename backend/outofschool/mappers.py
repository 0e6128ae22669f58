"""Conversions between database rows, DTOs, search documents and cards."""

from typing import Iterable, List

from . import models
from .schemas import AddressDTO, TeacherDTO, WorkshopCard, WorkshopDTO, WorkshopDocument

_SCALAR_FIELDS = (
    "title", "phone", "email", "website", "description", "head", "keywords",
    "min_age", "max_age", "price", "with_disability_options", "disability_options_desc",
    "rating", "direction_id", "category_id", "provider_id", "provider_title",
)
_ADDRESS_FIELDS = ("city", "street", "building_number", "region", "district", "latitude", "longitude")


def to_model(dto: WorkshopDTO) -> models.Workshop:
    """Build a new `Workshop` row with its address and teachers."""
    workshop = models.Workshop(**{f: getattr(dto, f) for f in _SCALAR_FIELDS})
    workshop.address = _address(dto.address)
    workshop.teachers = [_teacher(t) for t in dto.teachers]
    return workshop


def apply_to_model(dto: WorkshopDTO, workshop: models.Workshop) -> models.Workshop:
    """Copy `dto` onto an existing row.

    The address is edited in place; teachers are replaced wholesale and
    the ones dropped are deleted as orphans. Applications are untouched.
    """
    for f in _SCALAR_FIELDS:
        setattr(workshop, f, getattr(dto, f))
    if workshop.address is None:
        workshop.address = _address(dto.address)
    else:
        for f in _ADDRESS_FIELDS:
            setattr(workshop.address, f, getattr(dto.address, f))
    workshop.teachers = [_teacher(t) for t in dto.teachers]
    return workshop


def _address(dto: AddressDTO) -> models.Address:
    return models.Address(**{f: getattr(dto, f) for f in _ADDRESS_FIELDS})


def _teacher(dto: TeacherDTO) -> models.Teacher:
    return models.Teacher(
        first_name=dto.first_name,
        last_name=dto.last_name,
        middle_name=dto.middle_name,
        description=dto.description,
    )


def to_dto(workshop: models.Workshop) -> WorkshopDTO:
    return WorkshopDTO.model_validate(workshop)


def to_document(workshop: models.Workshop) -> WorkshopDocument:
    """Project a row (or DTO) onto the fields the search index filters on."""
    return WorkshopDocument(
        id=workshop.id,
        title=workshop.title,
        description=workshop.description or "",
        keywords=workshop.keywords,
        category_id=workshop.category_id,
        direction_id=workshop.direction_id,
        provider_id=workshop.provider_id,
        provider_title=workshop.provider_title or "",
        price=workshop.price,
        is_free=workshop.price == 0,
        min_age=workshop.min_age,
        max_age=workshop.max_age,
        city=workshop.address.city if workshop.address else "",
        rating=workshop.rating,
        with_disability_options=workshop.with_disability_options,
    )


def document_to_card(document: WorkshopDocument) -> WorkshopCard:
    return WorkshopCard(
        workshop_id=document.id,
        title=document.title,
        provider_id=document.provider_id,
        provider_title=document.provider_title,
        price=document.price,
        min_age=document.min_age,
        max_age=document.max_age,
        rating=document.rating,
        direction_id=document.direction_id,
        category_id=document.category_id,
        address_city=document.city,
        with_disability_options=document.with_disability_options,
    )


def to_cards(items: Iterable) -> List[WorkshopCard]:
    """Cards for rows or DTOs, via their search projection."""
    return [document_to_card(to_document(item)) for item in items]
