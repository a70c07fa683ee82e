# src/sefaz_integration/nfe_describer.py
# Builds the NFe record for a downloaded XML from the access key plus a few header values.

from datetime import datetime, timezone
from typing import Optional

from lxml import etree

from src.domain.nfe import NFe, NFeStatus, parse_access_key, build_xml_path, to_money, ensure_utc
from src.utils.logger import logger, mask_key
from src.api.errors import ValidationError

_PARSER = etree.XMLParser(resolve_entities=False, no_network=True, huge_tree=False)


def _first_text(root, xpath: str) -> Optional[str]:
    values = root.xpath(xpath)
    for value in values:
        text = str(value).strip()
        if text:
            return text
    return None


def _parse_issue_datetime(raw: str) -> Optional[datetime]:
    try:
        # fromisoformat only accepts a trailing "Z" from Python 3.11 on
        parsed = datetime.fromisoformat(raw[:-1] + "+00:00" if raw.endswith("Z") else raw)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return ensure_utc(parsed)


def describe_nfe(access_key: str, xml_bytes: bytes, fallback_issuer_name: Optional[str] = None) -> NFe:
    """
    Number, series and issuer come from the key. Issue date, issuer name and total are
    read by local name (dhEmi/dEmi, emit/xNome, ICMSTot/vNF) when the XML carries them.
    Without them the issue date is the first day of the key's month and the total is 0.00.
    """
    info = parse_access_key(access_key)
    issued_at = info.issue_month_start
    issuer_name = fallback_issuer_name or info.issuer_cnpj
    total_value = to_money(0)

    try:
        root = etree.fromstring(xml_bytes, parser=_PARSER)
    except etree.XMLSyntaxError as e:
        logger.warning(f"XML da chave {mask_key(access_key)} não pôde ser lido ({e}). Usando dados da chave.")
        root = None

    if root is not None:
        raw_date = (_first_text(root, "//*[local-name()='ide']/*[local-name()='dhEmi']/text()")
                    or _first_text(root, "//*[local-name()='ide']/*[local-name()='dEmi']/text()"))
        parsed_date = _parse_issue_datetime(raw_date) if raw_date else None
        if parsed_date:
            issued_at = parsed_date
        elif raw_date:
            logger.warning(f"Data de emissão '{raw_date}' inválida na chave {mask_key(access_key)}.")

        name = _first_text(root, "//*[local-name()='emit']/*[local-name()='xNome']/text()")
        if name:
            issuer_name = name

        raw_total = _first_text(root, "//*[local-name()='ICMSTot']/*[local-name()='vNF']/text()")
        if raw_total:
            try:
                total_value = to_money(raw_total)
            except ValidationError:
                logger.warning(f"Valor total '{raw_total}' inválido na chave {mask_key(access_key)}.")

    return NFe(
        access_key=access_key,
        number=info.number,
        series=info.series,
        issuer_cnpj=info.issuer_cnpj,
        issuer_name=issuer_name,
        issued_at=issued_at,
        total_value=total_value,
        xml_path=build_xml_path(issued_at, access_key),
        status=NFeStatus.AUTHORIZED,
    )
