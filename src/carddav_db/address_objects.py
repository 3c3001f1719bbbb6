"""Storing contacts and groups with their remote identifiers."""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from typing import Any

from carddav_db.database import Database

_EMAIL_KEY = re.compile(r"^email(:|$)")

# Searchable columns of the contacts table, filled from the save data.
CONTACT_EXTRA_COLUMNS = ("firstname", "surname", "organization", "showas", "email")


def aggregate_emails(save_data: Mapping[str, Any]) -> str:
    """Join all ``email`` / ``email:<type>`` values into one search string."""
    addresses: list[str] = []
    for key, value in save_data.items():
        if not _EMAIL_KEY.match(key):
            continue
        if isinstance(value, (list, tuple)):
            addresses.extend(str(v) for v in value)
        elif value is not None:
            addresses.append(str(value))
    return ", ".join(addresses)


class AddressObjectStore:
    """Inserts or updates contacts and groups in the local cache.

    An address object is backed by a card on the server (ETag, URI and
    vCard are known) unless it is a group derived from CATEGORIES, in
    which case those three are ``None``.
    """

    def __init__(self, db: Database) -> None:
        self.db = db

    def store_contact(
        self,
        abook_id: str,
        etag: str,
        uri: str,
        vcard: str,
        save_data: Mapping[str, Any],
        dbid: str | None = None,
    ) -> str:
        """Store a contact; returns its database id."""
        save_data = dict(save_data)
        save_data["email"] = aggregate_emails(save_data)

        columns = [c for c in CONTACT_EXTRA_COLUMNS if c in save_data]
        values = [save_data[c] for c in columns]

        return self.store_address_object(
            "contacts", abook_id, etag, uri, vcard, save_data, dbid, columns, values
        )

    def store_group(
        self,
        abook_id: str,
        save_data: Mapping[str, Any],
        dbid: str | None = None,
        etag: str | None = None,
        uri: str | None = None,
        vcard: str | None = None,
    ) -> str:
        """Store a group; KIND=group cards pass etag/uri/vcard, CATEGORIES groups don't."""
        return self.store_address_object("groups", abook_id, etag, uri, vcard, save_data, dbid)

    def store_address_object(
        self,
        table: str,
        abook_id: str,
        etag: str | None,
        uri: str | None,
        vcard: str | None,
        save_data: Mapping[str, Any],
        dbid: str | None,
        extra_columns: Sequence[str] = (),
        extra_values: Sequence[Any] = (),
    ) -> str:
        """Insert a new contact or group, or update the one with id *dbid*.

        Returns:
            The database id of the created or updated object.
        """
        columns = [*extra_columns, "name"]
        values = [*extra_values, save_data["name"]]

        if etag is not None:
            columns.append("etag")
            values.append(etag)

        if vcard is not None:
            columns.append("vcard")
            values.append(vcard)

        carddesc = uri if uri is not None else "(entry not backed by card)"

        if dbid is not None:
            self.db.logger.debug("address_object.update", table=table, id=dbid, card=carddesc)
            self.db.update(dbid, columns, values, table)
            return dbid

        self.db.logger.debug("address_object.insert", table=table, card=carddesc)

        columns.append("abook_id")
        values.append(abook_id)

        if uri is not None:
            columns.append("uri")
            values.append(uri)
        if save_data.get("cuid") is not None:
            columns.append("cuid")
            values.append(save_data["cuid"])

        return self.db.insert(table, columns, values)


__all__ = [
    "AddressObjectStore",
    "CONTACT_EXTRA_COLUMNS",
    "aggregate_emails",
]
