"""
Export column specification for NDOP occurrence exports.

The portal's export form takes one checkbox per output column. The set and
order of these identifiers is a fixed contract with the remote service, so
they are kept verbatim (the dataclass field names are their lowercase form).
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any

# Form field prefixes used by the export dialog
COLUMN_FIELD_PREFIX = "meziexport_sloupec_"
EXPORT_KIND_FIELD = "meziexport_druh"
EXPORT_ACTION_FIELD = "meziexport_tlacitko"
EXPORT_FORMAT_FIELD = "meziexport_typ_exportu"
EXPORT_TOKEN_FIELD = "ndtokenexport"

# Header the export writes for each column identifier. Identifiers that are
# not listed come back under their own name.
EXPORT_HEADERS = {
    "CXAKCE_AUTOR": "AUTOR",
    "CXAKCE_DATI_DO": "DATUM_DO",
    "CXAKCE_DATI_OD": "DATUM_OD",
    "CXAKCE_ZDROJ": "ZDROJ",
    "CXEVD": "EVIDENCE",
    "CXKATASTR_NAZEV": "KATASTR",
    "CXLOKAL_ID": "ID_LOKAL",
    "CXLOKAL_KVADRAT_XY": "SITMAP",
    "CXLOKAL_NAZEV": "NAZ_LOKAL",
    "CXLOKAL_POZN": "LOKAL_POZN",
    "CXLOKAL_X": "X",
    "CXLOKAL_Y": "Y",
    "CXLOKAL_Z": "Z",
    "CXMTD_DTB": "DATABAZE",
    "CXOSOBY_ZAPSAL": "ZAPSAL",
    "CXPRESNOST": "PRESNOST",
    "CXPROJ_NAZEV": "PROJEKT",
    "CXREDLIST": "CERVENY_SEZNAM",
    "CXTAXON_IDX_CATEG": "KAT_TAX",
    "CXTAXON_NAME": "DRUH",
    "CXVALIDACE": "VALIDACE",
    "CXVYHL": "VYHLASKA",
    "ID_ND_NALEZ": "ID_NALEZ",
    "NEGATIVNI": "NEGATIV",
}

# Export headers holding numbers written with a decimal comma
NUMERIC_HEADERS = ("ID_NALEZ", "X", "Y", "Z", "POCET", "HOD_VEROH")

# Fields of ExportColumnSpec that are directives rather than columns
_DIRECTIVES = ("export_kind", "export_format", "export_action")


@dataclass(frozen=True)
class ExportColumnSpec:
    """
    Which columns to request from the export endpoint.

    Every flag defaults to enabled. The comments name what the column holds.
    """

    cxakce_autor: bool = True  # record author
    cxakce_dati_do: bool = True  # observation date, end
    cxakce_dati_od: bool = True  # observation date, start
    cxakce_zdroj: bool = True  # data source
    cxevd: bool = True  # evidence type
    cxkatastr_nazev: bool = True  # cadastral area
    cxlokal_id: bool = True  # location id
    cxlokal_kvadrat_xy: bool = True  # mapping grid square
    cxlokal_nazev: bool = True  # location name
    cxlokal_pozn: bool = True  # location notes
    cxlokal_x: bool = True  # X in S-JTSK
    cxlokal_y: bool = True  # Y in S-JTSK
    cxlokal_z: bool = True  # altitude
    cxmtd_dtb: bool = True  # source database
    cxosoby_zapsal: bool = True  # entered by
    cxpresnost: bool = True  # location precision
    cxproj_nazev: bool = True  # project
    cxredlist: bool = True  # red list category
    cxtaxon_idx_categ: bool = True  # taxon group
    cxtaxon_name: bool = True  # taxon name
    cxvalidace: bool = True  # validation status
    cxvyhl: bool = True  # protection status
    hod_veroh: bool = True  # reliability score
    id_nd_nalez: bool = True  # record id
    negativni: bool = True  # negative record
    odhad: bool = True  # abundance estimate
    pocet: bool = True  # count
    pokryvnost: bool = True  # coverage
    pop_poc: bool = True  # population count
    poz_hab: bool = True  # habitat notes
    poz_hablok: bool = True  # habitat at location
    poznamka: bool = True  # notes
    rel_poc: bool = True  # relative abundance
    strukt_pozn: bool = True  # structured notes
    tax_note: bool = True  # taxon notes
    veroh: bool = True  # reliability

    export_kind: str = "nalezy"
    export_format: str = "csv"
    export_action: str = "Exportovat"

    def __post_init__(self) -> None:
        if not self.column_names():
            raise ValueError("At least one export column must be enabled")

    @classmethod
    def available_columns(cls) -> list[str]:
        """All column identifiers the portal understands, in contract order."""
        return [
            f.name.upper() for f in fields(cls) if f.name not in _DIRECTIVES
        ]

    @classmethod
    def only(cls, *identifiers: str) -> ExportColumnSpec:
        """
        Build a spec with just the given columns enabled.

        Args:
            identifiers: Column identifiers (e.g., "ID_ND_NALEZ", "CXLOKAL_X")

        Raises:
            ValueError: If an identifier is unknown
        """
        wanted = {name.upper() for name in identifiers}
        unknown = wanted - set(cls.available_columns())
        if unknown:
            raise ValueError(f"Unknown export columns: {', '.join(sorted(unknown))}")

        flags = {
            name.lower(): name in wanted for name in cls.available_columns()
        }
        return cls(**flags)

    def column_names(self) -> list[str]:
        """Enabled column identifiers, in contract order."""
        return [
            f.name.upper()
            for f in fields(self)
            if f.name not in _DIRECTIVES and getattr(self, f.name)
        ]

    def export_headers(self) -> list[str]:
        """Header names the export writes for the enabled columns."""
        return [EXPORT_HEADERS.get(name, name) for name in self.column_names()]

    def to_payload(self, export_token: str) -> dict[str, Any]:
        """
        Build the export form body.

        Args:
            export_token: The session's export token

        Returns:
            Form fields in the order the portal's dialog submits them
        """
        payload: dict[str, Any] = {EXPORT_KIND_FIELD: self.export_kind}

        for name in self.column_names():
            payload[f"{COLUMN_FIELD_PREFIX}{name}"] = 1

        payload[EXPORT_ACTION_FIELD] = self.export_action
        payload[EXPORT_FORMAT_FIELD] = self.export_format
        payload[EXPORT_TOKEN_FIELD] = export_token

        return payload


DEFAULT_COLUMNS = ExportColumnSpec()
