"""OPeNDAP request construction for JARKUS resources."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from .parsers import DEFAULT_CATALOG_SIZE

DEFAULT_CATALOG_ENDPOINT = (
    'https://opendap.deltares.nl/thredds/dodsC/opendap/rijkswaterstaat/jarkus/profiles/transect.nc'
)


def build_slice(start: int, stop: int | None = None, stride: int = 1) -> str:
    """Build a ``[start:stride:stop]`` hyperslab; ``stop`` defaults to ``start``."""
    if stop is None:
        stop = start
    if start < 0 or stop < start or stride <= 0:
        raise ValueError(f"Invalid slice start={start}, stop={stop}, stride={stride}")
    return f"[{start}:{stride}:{stop}]"


def build_dataset_url(endpoint: str, expressions: Sequence[str]) -> str:
    """Join an endpoint and constraint expressions into an ASCII request URL."""
    if not expressions:
        raise ValueError("At least one variable expression is required")
    base = endpoint[:-len('.ascii')] if endpoint.endswith('.ascii') else endpoint
    return f"{base}.ascii?{','.join(expressions)}"


def catalog_url(endpoint: str = DEFAULT_CATALOG_ENDPOINT, size: int = DEFAULT_CATALOG_SIZE, variable: str = 'id') -> str:
    """URL of the full transect identifier catalog."""
    return build_dataset_url(endpoint, [f"{variable}{build_slice(0, size - 1)}"])


@dataclass(frozen=True)
class DatasetRequest:
    """Endpoint plus per-variable expression templates for one dataset.

    Templates may use ``{index}``, ``{time_last}`` and ``{cross_shore_last}``.
    """

    name: str
    endpoint: str
    variables: Mapping[str, str]
    time_size: int | None = None
    cross_shore_size: int | None = None
    options: Mapping[str, object] = field(default_factory=dict)

    @classmethod
    def from_settings(cls, name: str, settings: Mapping[str, object]) -> "DatasetRequest":
        """Build a request description from one ``datasets`` config entry."""
        options = {
            key: value for key, value in settings.items()
            if key in ('time_variable', 'value_variables')
        }
        if 'value_variables' in options:
            options['value_variables'] = tuple(options['value_variables'])
        return cls(
            name=name,
            endpoint=str(settings['endpoint']),
            variables=dict(settings['variables']),
            time_size=settings.get('time_size'),
            cross_shore_size=settings.get('cross_shore_size'),
            options=options,
        )

    def expressions(self, index: int) -> list[str]:
        if index < 0:
            raise ValueError(f"Catalog index must be non-negative, got {index}")
        placeholders = {'index': index}
        if self.time_size is not None:
            placeholders['time_last'] = self.time_size - 1
        if self.cross_shore_size is not None:
            placeholders['cross_shore_last'] = self.cross_shore_size - 1

        rendered: list[str] = []
        for variable, template in self.variables.items():
            try:
                rendered.append(template.format(**placeholders))
            except KeyError as exc:
                raise ValueError(
                    f"Dataset '{self.name}' template for '{variable}' needs placeholder {exc}"
                ) from exc
        return rendered

    def url_for_index(self, index: int) -> str:
        return build_dataset_url(self.endpoint, self.expressions(index))


def build_transect_request(dataset: DatasetRequest, index: int) -> str:
    """Render the request URL of ``dataset`` for one resolved catalog index."""
    return dataset.url_for_index(index)
