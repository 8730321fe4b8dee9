from translation_client.exceptions import InvalidParameterError


def validate_glossary_term(term: str) -> None:
    if not term or not term.strip():
        raise InvalidParameterError(f'Term "{term}" contains no non-whitespace characters')
    for char in term:
        if char in "\t\n\r" or ord(char) < 0x20 or 0x7F <= ord(char) <= 0x9F:
            raise InvalidParameterError(
                f'Term "{term}" contains invalid character: {char!r}'
            )


def entries_to_tsv(entries: dict[str, str]) -> str:
    """Encode glossary entries as tab-separated source/target lines"""
    if not entries:
        raise InvalidParameterError("glossary entries must not be empty")
    lines = []
    for source, target in entries.items():
        validate_glossary_term(source)
        validate_glossary_term(target)
        lines.append(f"{source}\t{target}")
    return "\n".join(lines)


def entries_from_tsv(content: str) -> dict[str, str]:
    """Parse tab-separated glossary entries, ignoring blank lines"""
    entries: dict[str, str] = {}
    for line_number, line in enumerate(content.splitlines(), start=1):
        if not line.strip():
            continue
        source, sep, target = line.partition("\t")
        if not sep:
            raise InvalidParameterError(
                f"Entry {line_number} does not contain a term separator: {line!r}"
            )
        if "\t" in target:
            raise InvalidParameterError(
                f"Entry {line_number} contains more than one term separator: {line!r}"
            )
        source, target = source.strip(), target.strip()
        validate_glossary_term(source)
        validate_glossary_term(target)
        if source in entries:
            raise InvalidParameterError(
                f'Entry {line_number} duplicates source term "{source}"'
            )
        entries[source] = target
    return entries
