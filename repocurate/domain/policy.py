"""
Policy domain object for repocurate.

A Policy is the administrator's curation configuration. It is built once
before the pipeline runs and passed explicitly to every stage.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Iterable, Mapping, Optional, Sequence, Tuple

from .matchspec import MatchSpec
from .version import PRERELEASE_TOKENS

DEFAULT_CHANNEL_ALIAS = "https://conda.anaconda.org/conda-forge/"


@dataclass(frozen=True)
class Policy:
    """
    Curation policy.

    Attributes:
        allow_list: package name -> constraints; a record of a listed name
            survives only if it matches at least one of them
        banned_features: records tracking any of these features are removed
        exclude_prerelease: remove pre-release versions
        prerelease_tokens: which tokens count as pre-release markers
        anchors: names every surviving package must stay co-installable with
        channel_alias: base URL used when repodata declares none
        append_subdir: append the subdir name to channel_alias for base_url
    """

    allow_list: Mapping[str, Tuple[MatchSpec, ...]] = field(default_factory=dict)
    banned_features: FrozenSet[str] = frozenset()
    exclude_prerelease: bool = True
    prerelease_tokens: FrozenSet[str] = PRERELEASE_TOKENS
    anchors: Tuple[str, ...] = ()
    channel_alias: str = DEFAULT_CHANNEL_ALIAS
    append_subdir: bool = False

    def __post_init__(self):
        # Read-only views; dataclass(frozen=True) does not freeze containers
        frozen = {name: tuple(specs) for name, specs in self.allow_list.items()}
        object.__setattr__(self, 'allow_list', MappingProxyType(frozen))
        object.__setattr__(self, 'banned_features', frozenset(self.banned_features))
        object.__setattr__(self, 'prerelease_tokens', frozenset(self.prerelease_tokens))
        object.__setattr__(self, 'anchors', tuple(dict.fromkeys(self.anchors)))

    @classmethod
    def build(
        cls,
        allow_list: Optional[Mapping[str, Sequence[MatchSpec]]] = None,
        banned_features: Iterable[str] = (),
        exclude_prerelease: bool = True,
        keep_dev: bool = False,
        keep_rc: bool = False,
        prerelease_tokens: Optional[Iterable[str]] = None,
        anchors: Iterable[str] = (),
        channel_alias: str = DEFAULT_CHANNEL_ALIAS,
        append_subdir: bool = False,
    ) -> 'Policy':
        """Build a Policy from loosely typed inputs (CLI options, config values)."""
        tokens = set(prerelease_tokens if prerelease_tokens is not None else PRERELEASE_TOKENS)
        if keep_dev:
            tokens.discard('dev')
        if keep_rc:
            tokens.discard('rc')
        return cls(
            allow_list=dict(allow_list or {}),
            banned_features=frozenset(banned_features),
            exclude_prerelease=exclude_prerelease and bool(tokens),
            prerelease_tokens=frozenset(tokens),
            anchors=tuple(anchors),
            channel_alias=channel_alias,
            append_subdir=append_subdir,
        )

    def base_url_for(self, subdir: str) -> str:
        """Base URL to advertise for a subdir whose repodata declares none."""
        if self.append_subdir:
            return f"{self.channel_alias.rstrip('/')}/{subdir}"
        return self.channel_alias

    def to_dict(self) -> Dict[str, Any]:
        return {
            'allow_list': {name: [str(s) for s in specs] for name, specs in sorted(self.allow_list.items())},
            'banned_features': sorted(self.banned_features),
            'exclude_prerelease': self.exclude_prerelease,
            'prerelease_tokens': sorted(self.prerelease_tokens),
            'anchors': list(self.anchors),
            'channel_alias': self.channel_alias,
            'append_subdir': self.append_subdir,
        }
