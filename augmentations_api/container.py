"""
Service registration and resolution on top of ``injector``.

Registrars append ServiceDescriptor entries to a ServiceCollection. Once every
registrar has run, the collection is validated and installed into an
``injector.Injector`` through a ServiceModule. Each HTTP request opens a
ServiceScope: a child injector whose scoped instances live for that request
and are disposed with it.

Lifetimes map onto injector scopes:
- transient: ``noscope``, a new instance on every resolution
- scoped: ``request_scope``, one instance per ServiceScope
- singleton: ``singleton``, one instance per provider (per process)

Implementations are built by injector's constructor injection, so an
implementation whose __init__ takes arguments must be decorated with
``@inject``.
"""

import inspect
import typing
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional, Protocol

import structlog
from injector import (
    Binder,
    ClassProvider,
    Injector,
    InstanceProvider,
    Module,
    Provider,
    Scope,
    ScopeDecorator,
    get_bindings,
    noscope,
    singleton,
)

from augmentations_api.exceptions import ConfigurationError, DuplicateRegistrationError

logger = structlog.get_logger(__name__)


class ServiceLifetime(str, Enum):
    """How long a resolved instance is reused."""

    TRANSIENT = "transient"
    SCOPED = "scoped"
    SINGLETON = "singleton"


class ServiceResolver(Protocol):
    """Anything that can hand out registered services."""

    def get_required_service(self, service_type: Any) -> Any:
        ...


Factory = Callable[[ServiceResolver], Any]


def service_name(service_type: Any) -> str:
    """Readable name for plain and parameterized generic types."""
    origin = typing.get_origin(service_type)
    if origin is not None:
        args = ", ".join(service_name(arg) for arg in typing.get_args(service_type))
        return f"{service_name(origin)}[{args}]"
    return getattr(service_type, "__name__", repr(service_type))


@dataclass(frozen=True)
class ServiceDescriptor:
    """A single binding of a service type to how it is produced."""

    service_type: Any
    lifetime: ServiceLifetime
    implementation: Optional[type] = None
    factory: Optional[Factory] = None
    instance: Any = None

    def __post_init__(self) -> None:
        provided = [
            self.implementation is not None,
            self.factory is not None,
            self.instance is not None,
        ]
        if sum(provided) != 1:
            raise ValueError(
                f"Service '{service_name(self.service_type)}' needs exactly one of "
                "implementation, factory or instance"
            )
        if self.instance is not None and self.lifetime is not ServiceLifetime.SINGLETON:
            raise ValueError("Instances can only be registered as singletons")

    def constructor_dependencies(self) -> Dict[str, Any]:
        """
        Map the injected __init__ parameter names to their annotated types.

        These are the parameters injector fills in: every annotated parameter
        of an ``@inject`` constructor, minus those marked ``NoInject``.
        """
        init = self._init()
        if init is None:
            return {}
        return dict(get_bindings(init))

    def uninjectable_parameters(self) -> List[str]:
        """Required __init__ parameters injector has no binding for."""
        init = self._init()
        if init is None:
            return []

        injected = self.constructor_dependencies()
        return [
            name
            for name, parameter in inspect.signature(init).parameters.items()
            if name != "self"
            and parameter.kind not in (
                inspect.Parameter.VAR_POSITIONAL,
                inspect.Parameter.VAR_KEYWORD,
            )
            and parameter.default is inspect.Parameter.empty
            and name not in injected
        ]

    def _init(self) -> Optional[Callable[..., Any]]:
        if self.implementation is None:
            return None
        init = self.implementation.__init__
        if init is object.__init__:
            return None
        return init


class ServiceCollection:
    """
    Ordered, append-only collection of service descriptors.

    Each service type may be registered once; a second registration raises
    DuplicateRegistrationError, so running a registrar twice fails loudly.
    """

    def __init__(self) -> None:
        self._descriptors: List[ServiceDescriptor] = []
        self._index: Dict[Any, ServiceDescriptor] = {}

    def add(self, descriptor: ServiceDescriptor) -> "ServiceCollection":
        """
        Append a descriptor.

        Raises:
            DuplicateRegistrationError: If the service type is already bound
        """
        if descriptor.service_type in self._index:
            raise DuplicateRegistrationError(descriptor.service_type)

        self._descriptors.append(descriptor)
        self._index[descriptor.service_type] = descriptor

        logger.debug(
            "service_registered",
            service=service_name(descriptor.service_type),
            lifetime=descriptor.lifetime.value
        )
        return self

    def add_transient(
        self,
        service_type: Any,
        implementation: Optional[type] = None,
        *,
        factory: Optional[Factory] = None,
    ) -> "ServiceCollection":
        """Bind a service created anew on every resolution."""
        if implementation is None and factory is None:
            implementation = service_type
        return self.add(ServiceDescriptor(
            service_type, ServiceLifetime.TRANSIENT,
            implementation=implementation, factory=factory
        ))

    def add_scoped(
        self,
        service_type: Any,
        implementation: Optional[type] = None,
        *,
        factory: Optional[Factory] = None,
    ) -> "ServiceCollection":
        """Bind a service created once per scope."""
        if implementation is None and factory is None:
            implementation = service_type
        return self.add(ServiceDescriptor(
            service_type, ServiceLifetime.SCOPED,
            implementation=implementation, factory=factory
        ))

    def add_singleton(
        self,
        service_type: Any,
        implementation: Optional[type] = None,
        *,
        factory: Optional[Factory] = None,
        instance: Any = None,
    ) -> "ServiceCollection":
        """Bind a service created once per provider, or a ready instance."""
        if implementation is None and factory is None and instance is None:
            implementation = service_type
        return self.add(ServiceDescriptor(
            service_type, ServiceLifetime.SINGLETON,
            implementation=implementation, factory=factory, instance=instance
        ))

    def get_descriptor(self, service_type: Any) -> Optional[ServiceDescriptor]:
        """Return the descriptor bound to service_type, if any."""
        return self._index.get(service_type)

    def get_instance(self, service_type: Any) -> Any:
        """
        Return a registered singleton instance.

        Registrars use this to read options registered by earlier registrars.

        Raises:
            ConfigurationError: If no instance is registered for service_type
        """
        descriptor = self._index.get(service_type)
        if descriptor is None or descriptor.instance is None:
            raise ConfigurationError(
                service_name(service_type), "must be registered before it is used"
            )
        return descriptor.instance

    def __contains__(self, service_type: Any) -> bool:
        return service_type in self._index

    def __len__(self) -> int:
        return len(self._descriptors)

    def __iter__(self) -> Iterator[ServiceDescriptor]:
        return iter(self._descriptors)

    def validate(self) -> None:
        """
        Check that every binding can be constructed.

        Raises:
            ConfigurationError: If a constructor takes arguments injector
                can't supply, depends on an unregistered service, or is a
                singleton depending on a scoped service
        """
        for descriptor in self._descriptors:
            name = service_name(descriptor.service_type)

            uninjectable = descriptor.uninjectable_parameters()
            if uninjectable:
                raise ConfigurationError(
                    f"{name}.{uninjectable[0]}",
                    "is a required constructor argument that is not injected (missing @inject?)"
                )

            for parameter, dependency in descriptor.constructor_dependencies().items():
                target = self._index.get(dependency)
                owner = f"{name}.{parameter}"

                if target is None:
                    raise ConfigurationError(
                        owner,
                        f"requires '{service_name(dependency)}' which is not registered"
                    )
                if (
                    descriptor.lifetime is ServiceLifetime.SINGLETON
                    and target.lifetime is ServiceLifetime.SCOPED
                ):
                    raise ConfigurationError(
                        owner,
                        f"is a singleton depending on scoped '{service_name(dependency)}'"
                    )

    def build_service_provider(self) -> "ServiceProvider":
        """Validate the collection and create a provider from it."""
        self.validate()
        logger.info("service_provider_built", services=len(self._descriptors))
        return ServiceProvider(list(self._descriptors))


# ============================================================================
# Injector Bindings
# ============================================================================


class RequestScope(Scope):
    """One instance per ServiceScope; the root provider can't resolve these."""

    def get(self, key: Any, provider: Provider) -> Provider:
        return _ScopedProvider(key, provider)


request_scope = ScopeDecorator(RequestScope)

LIFETIME_SCOPES: Dict[ServiceLifetime, ScopeDecorator] = {
    ServiceLifetime.TRANSIENT: noscope,
    ServiceLifetime.SCOPED: request_scope,
    ServiceLifetime.SINGLETON: singleton,
}


class _ScopedProvider(Provider):
    """Caches instances on the ServiceScope resolving them."""

    def __init__(self, key: Any, provider: Provider):
        self._key = key
        self._provider = provider

    def get(self, injector: Injector) -> Any:
        resolver = injector.get(_Resolver)
        if not isinstance(resolver, ServiceScope):
            raise RuntimeError(
                f"Scoped service '{service_name(self._key)}' "
                "cannot be resolved outside a scope"
            )
        return resolver._get_or_create(self._key, self._provider, injector)


class _FactoryProvider(Provider):
    """Calls a registration factory with the resolver asking for the service."""

    def __init__(self, factory: Factory):
        self._factory = factory

    def get(self, injector: Injector) -> Any:
        return self._factory(injector.get(_Resolver))


class _OwnedProvider(Provider):
    """Hands created instances that need disposal to the resolver that made them."""

    def __init__(self, provider: Provider):
        self._provider = provider

    def get(self, injector: Injector) -> Any:
        instance = self._provider.get(injector)
        if _is_disposable(instance):
            injector.get(_Resolver)._track(instance)
        return instance


class ServiceModule(Module):
    """Installs the descriptors of a collection into an injector."""

    def __init__(self, descriptors: List[ServiceDescriptor]):
        self.descriptors = descriptors

    def configure(self, binder: Binder) -> None:
        for descriptor in self.descriptors:
            binder.bind(
                descriptor.service_type,
                to=self._provider_for(descriptor),
                scope=LIFETIME_SCOPES[descriptor.lifetime],
            )

    @staticmethod
    def _provider_for(descriptor: ServiceDescriptor) -> Provider:
        if descriptor.instance is not None:
            return InstanceProvider(descriptor.instance)

        if descriptor.factory is not None:
            provider: Provider = _FactoryProvider(descriptor.factory)
        else:
            provider = ClassProvider(descriptor.implementation)

        # Scoped instances are owned by the ServiceScope caching them.
        if descriptor.lifetime is ServiceLifetime.SCOPED:
            return provider
        return _OwnedProvider(provider)


# ============================================================================
# Resolution
# ============================================================================


class _Resolver:
    """Common ground of the root provider and request scopes."""

    def __init__(self, injector: Injector, descriptors: Dict[Any, ServiceDescriptor]):
        self._injector = injector
        self._descriptors = descriptors
        self._owned: List[Any] = []
        injector.binder.bind(_Resolver, to=InstanceProvider(self))

    @property
    def injector(self) -> Injector:
        return self._injector

    def get_service(self, service_type: Any) -> Optional[Any]:
        """Resolve a service, or None if it isn't registered."""
        if service_type not in self._descriptors:
            return None
        return self.get_required_service(service_type)

    def get_required_service(self, service_type: Any) -> Any:
        """
        Resolve a registered service.

        Raises:
            LookupError: If the service isn't registered
            RuntimeError: If the service is scoped and this is the root provider
        """
        if service_type not in self._descriptors:
            raise LookupError(f"No service registered for '{service_name(service_type)}'")
        return self._injector.get(service_type)

    def _track(self, instance: Any) -> None:
        self._owned.append(instance)

    async def _dispose_owned(self) -> None:
        for instance in reversed(self._owned):
            await _dispose(instance)
        self._owned.clear()


class ServiceProvider(_Resolver):
    """Root resolver holding singletons for the lifetime of the process."""

    def __init__(self, descriptors: List[ServiceDescriptor]):
        super().__init__(
            Injector([ServiceModule(descriptors)], auto_bind=False),
            {descriptor.service_type: descriptor for descriptor in descriptors},
        )

    def create_scope(self) -> "ServiceScope":
        """Open a new scope for one unit of work (one request)."""
        return ServiceScope(self)

    async def aclose(self) -> None:
        """Dispose singletons created by this provider."""
        await self._dispose_owned()


class ServiceScope(_Resolver):
    """Per-request child injector caching scoped instances."""

    def __init__(self, provider: ServiceProvider):
        super().__init__(
            provider.injector.create_child_injector(auto_bind=False),
            provider._descriptors,
        )
        self._provider = provider
        self._instances: Dict[Any, Any] = {}
        self._closed = False

    @property
    def provider(self) -> ServiceProvider:
        return self._provider

    def get_required_service(self, service_type: Any) -> Any:
        """Resolve any registered service within this scope."""
        if self._closed:
            raise RuntimeError("Service scope is closed")
        return super().get_required_service(service_type)

    def _get_or_create(self, key: Any, provider: Provider, injector: Injector) -> Any:
        if key not in self._instances:
            instance = provider.get(injector)
            self._instances[key] = instance
            self._track(instance)
        return self._instances[key]

    async def aclose(self) -> None:
        """Dispose every instance owned by this scope, newest first."""
        if self._closed:
            return
        self._closed = True
        await self._dispose_owned()
        self._instances.clear()

    async def __aenter__(self) -> "ServiceScope":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()


def _is_disposable(instance: Any) -> bool:
    closer = getattr(instance, "aclose", None) or getattr(instance, "close", None)
    return callable(closer)


async def _dispose(instance: Any) -> None:
    """Call aclose() or close() on an instance that has one."""
    closer = getattr(instance, "aclose", None) or getattr(instance, "close", None)
    if closer is None or not callable(closer):
        return
    try:
        result = closer()
        if inspect.isawaitable(result):
            await result
    except Exception as e:
        logger.error("service_dispose_failed", service=type(instance).__name__, error=str(e))
