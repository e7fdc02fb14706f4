"""
Wire models for the authors cache.

The Author model is aligned with the UPP author model served by the other
concept transformers. It is both the persisted value format (one JSON
document per cache entry) and the HTTP response format.

Invariants:
    - uuid, prefLabel, type and alternativeIdentifiers are always emitted
    - Every other field is omitted when unset
    - Curated fields are only populated by the curated overlay

How to change safely:
    - Add new fields as optional so previously cached values still decode
    - Never rename aliases, downstream consumers read these exact keys
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

AUTHOR_TYPE = "Person"


class EntityDecodeError(ValueError):
    """Stored bytes could not be decoded as an author."""

    pass


class AlternativeIdentifiers(BaseModel):
    """Identifiers the author is known by in other systems."""

    model_config = ConfigDict(populate_by_name=True)

    tme: list[str] | None = Field(default=None, alias="TME")
    uuids: list[str] | None = None


class Author(BaseModel):
    """A cached author.

    Attributes:
        uuid: Deterministic author UUID
        pref_label: Preferred label
        type: Concept type, always "Person" for authors
        alternative_identifiers: TME identifiers and UUIDs
        aliases: Alternative names
        name: Curated display name
        email_address: Curated email address
        twitter_handle: Curated Twitter handle
        facebook_profile: Curated Facebook profile
        linkedin_profile: Curated LinkedIn profile
        description: Plain-text rendering of the curated biography
        description_xml: Curated biography markup
        image_url: Curated image reference
    """

    model_config = ConfigDict(populate_by_name=True)

    uuid: str
    pref_label: str = Field(default="", alias="prefLabel")
    type: str = ""
    alternative_identifiers: AlternativeIdentifiers = Field(
        default_factory=AlternativeIdentifiers, alias="alternativeIdentifiers"
    )
    aliases: list[str] | None = None
    name: str | None = None
    email_address: str | None = Field(default=None, alias="emailAddress")
    twitter_handle: str | None = Field(default=None, alias="twitterHandle")
    facebook_profile: str | None = Field(default=None, alias="facebookProfile")
    linkedin_profile: str | None = Field(default=None, alias="linkedinProfile")
    description: str | None = None
    description_xml: str | None = Field(default=None, alias="descriptionXML")
    image_url: str | None = Field(default=None, alias="_imageUrl")

    def to_json(self) -> bytes:
        """Encode for storage and the wire."""
        return self.model_dump_json(by_alias=True, exclude_none=True).encode("utf-8")

    @classmethod
    def from_json(cls, data: bytes | str) -> Author:
        """Decode a stored author.

        Raises:
            EntityDecodeError: If the data is not a valid author document
        """
        try:
            return cls.model_validate_json(data)
        except ValidationError as e:
            raise EntityDecodeError(f"Invalid author document: {e}") from e


class AuthorLink(BaseModel):
    """Reference link to an author resource."""

    model_config = ConfigDict(populate_by_name=True)

    api_url: str = Field(alias="apiUrl")


class AuthorId(BaseModel):
    """Identifier-only projection of an author."""

    model_config = ConfigDict(populate_by_name=True)

    uuid: str = Field(alias="ID")


class CuratedAuthor(BaseModel):
    """One record of the curated authors dataset (Bertha)."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str = ""
    email: str = ""
    image_url: str = Field(default="", alias="imageurl")
    biography: str = ""
    twitter_handle: str = Field(default="", alias="twitterhandle")
    facebook_profile: str = Field(default="", alias="facebookprofile")
    linkedin_profile: str = Field(default="", alias="linkedinprofile")
    tme_identifier: str = Field(alias="tmeidentifier")


curated_authors_adapter: TypeAdapter[list[CuratedAuthor]] = TypeAdapter(list[CuratedAuthor])
