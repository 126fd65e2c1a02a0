from __future__ import annotations

from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Union, assert_never

from zeroai.auth.auth_data import AuthData
from zeroai.errors import UnresolvableModelError
from zeroai.mapper import ModelMapper
from zeroai.providers import ProviderKind

if TYPE_CHECKING:
    from zeroai.adapters.registry import AdapterRegistry


@dataclass(frozen=True, slots=True)
class Endpoint:
    base_url: str
    owned: bool = False

    @classmethod
    def from_static(cls, url: str) -> Endpoint:
        return cls(base_url=url)

    @classmethod
    def from_owned(cls, url: str) -> Endpoint:
        """Endpoint built at runtime, e.g. with an interpolated project or region."""
        return cls(base_url=url, owned=True)

    def join(self, path: str) -> str:
        return f"{self.base_url.rstrip('/')}/{path.lstrip('/')}"


@dataclass(frozen=True, slots=True)
class ModelIdentity:
    provider: ProviderKind
    model_name: str

    def __str__(self) -> str:
        return f"{self.provider.value}/{self.model_name}"


@dataclass(frozen=True, slots=True)
class ServiceTarget:
    endpoint: Endpoint
    auth: AuthData
    model: ModelIdentity

    def with_auth(self, auth: AuthData) -> ServiceTarget:
        return replace(self, auth=auth)


# A bare string is resolved by name, a ModelIdentity by identity, and a
# ServiceTarget is used as given.
ModelSpec = Union[str, ModelIdentity, ServiceTarget]


class TargetResolver:
    def __init__(
        self,
        registry: AdapterRegistry,
        mapper: ModelMapper | None = None,
    ) -> None:
        self._registry = registry
        self._mapper = mapper or ModelMapper()

    def target_for(self, model: ModelIdentity) -> ServiceTarget:
        return ServiceTarget(
            endpoint=self._registry.default_endpoint(model.provider),
            auth=self._registry.default_auth(model.provider),
            model=model,
        )

    def resolve(self, spec: ModelSpec) -> tuple[ServiceTarget, str | None]:
        if isinstance(spec, ServiceTarget):
            return spec, None
        if isinstance(spec, ModelIdentity):
            return self.target_for(spec), None
        if isinstance(spec, str):
            return self._resolve_name(spec)
        assert_never(spec)

    def _resolve_name(self, name: str) -> tuple[ServiceTarget, str | None]:
        split = self._mapper.split_id(name)
        if split is not None:
            prefix, short_name = split
            provider = ProviderKind.from_lower_str(prefix)
            if provider is not None:
                model = ModelIdentity(provider=provider, model_name=short_name)
                return self.target_for(model), prefix

        normalized = name.strip()
        provider = ProviderKind.from_model(normalized)
        if provider is None:
            raise UnresolvableModelError(name)
        return self.target_for(ModelIdentity(provider=provider, model_name=normalized)), None
