"""
Matchspec documents for repocurate.

A matchspec document is a YAML mapping from package name to the specs
allowed for that name, written without the name:

    python:
      - ">=3.9,<3.13"
      - "3.8.* *_cpython"
    pyyaml: "=6.0"

Each spec is prefixed with its key before parsing. Documents merge by
concatenating the specs of each name in load order.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Tuple, Union

import yaml

from .domain import MatchSpec, parse_matchspec
from .errors import ConstraintParseError

logger = logging.getLogger(__name__)

AllowList = Dict[str, List[MatchSpec]]


def _spec_strings(name: str, value: Any, source: str) -> List[str]:
    if value is None:
        return [name]
    if isinstance(value, (str, int, float)) and not isinstance(value, bool):
        value = [value]
    if not isinstance(value, list):
        raise ConstraintParseError(f"{source}:{name}", "expected a spec or a list of specs")

    specs = []
    for item in value:
        if isinstance(item, bool) or not isinstance(item, (str, int, float)):
            raise ConstraintParseError(f"{source}:{name}", f"invalid spec {item!r}")
        specs.append(f"{name} {item}".strip())
    return specs


def parse_document(document: Union[str, Mapping[str, Any], None], source: str = "<string>") -> AllowList:
    """
    Parse one matchspec document.

    Args:
        document: YAML text or an already-loaded mapping
        source: Name used in error messages

    Returns:
        name -> parsed specs, in document order

    Raises:
        ConstraintParseError: if the document is not a mapping or a spec is invalid
    """
    if isinstance(document, str):
        try:
            document = yaml.safe_load(document)
        except yaml.YAMLError as e:
            raise ConstraintParseError(source, f"invalid YAML: {e}") from e

    if document is None:
        return {}
    if not isinstance(document, Mapping):
        raise ConstraintParseError(source, "matchspec document must map package names to specs")

    allow_list: AllowList = {}
    for name, value in document.items():
        name = str(name)
        allow_list[name] = [parse_matchspec(text) for text in _spec_strings(name, value, source)]
    logger.debug(f"{source}: {sum(len(v) for v in allow_list.values())} specs for {len(allow_list)} names")
    return allow_list


def load_document(path: Union[str, Path]) -> AllowList:
    """Read and parse a matchspec YAML file."""
    path = Path(path).expanduser()
    try:
        text = path.read_text(encoding='utf-8')
    except OSError as e:
        raise ConstraintParseError(str(path), f"cannot read file: {e}") from e
    return parse_document(text, source=str(path))


def merge(allow_lists: Iterable[AllowList]) -> AllowList:
    """Concatenate specs per name, keeping load order."""
    merged: AllowList = {}
    for allow_list in allow_lists:
        for name, specs in allow_list.items():
            merged.setdefault(name, []).extend(specs)
    return merged


def build_allow_list(
    files: Iterable[Union[str, Path]] = (),
    specs: Iterable[str] = ()
) -> Dict[str, Tuple[MatchSpec, ...]]:
    """
    Build a Policy allow-list from matchspec files and full spec strings.

    Args:
        files: Matchspec YAML documents
        specs: Full specifiers such as ``"python >=3.9"`` (the ``-C`` option)

    Raises:
        ConstraintParseError: on any unparsable document or spec
    """
    documents = [load_document(path) for path in files]
    extra: AllowList = {}
    for text in specs:
        spec = parse_matchspec(text)
        extra.setdefault(spec.name, []).append(spec)
    documents.append(extra)
    return {name: tuple(name_specs) for name, name_specs in merge(documents).items()}
