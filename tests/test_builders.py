import functools
import inspect
import unittest
from typing import NamedTuple

import pytest

from phoenix_inject import BuilderNotFoundError, Injector


class Config: ...


class Service:
    def __init__(self, config: Config):
        self.config = config


def make_service_with_string_annotations(config: "Config") -> "Service":
    return Service(config)


class TestClassBuilderSignatures(unittest.TestCase):
    inj: Injector

    def setUp(self):
        self.inj = Injector()
        self.inj.register(Config)

    def test_named_tuple_builder_injects_its_fields(self):
        class Settings(NamedTuple):
            config: Config

        assert self.inj.register(Settings) is Settings

        settings = self.inj.resolve(Settings)
        assert isinstance(settings, Settings)
        assert isinstance(settings.config, Config)

    def test_pass_through_new_uses_annotated_init(self):
        class Pooled:
            def __new__(cls, *args, **kwargs):
                return super().__new__(cls)

            def __init__(self, config: Config):
                self.config = config

        self.inj.register(Pooled)

        pooled = self.inj.resolve(Pooled)
        assert isinstance(pooled.config, Config)

    def test_new_with_own_parameters_is_used(self):
        class Interned:
            def __new__(cls, config: Config):
                obj = super().__new__(cls)
                obj.config = config
                return obj

        self.inj.register(Interned)

        assert isinstance(self.inj.resolve(Interned).config, Config)

    def test_explicit_signature_attribute_is_honoured(self):
        class Dynamic:
            def __init__(self, *args, **kwargs):
                self.kwargs = kwargs

        Dynamic.__signature__ = inspect.Signature(
            [inspect.Parameter("config", inspect.Parameter.KEYWORD_ONLY, annotation=Config)]
        )

        self.inj.register(Dynamic)

        assert isinstance(self.inj.resolve(Dynamic).kwargs["config"], Config)

    def test_string_annotations_are_evaluated(self):
        assert self.inj.register(make_service_with_string_annotations) is Service

        assert isinstance(self.inj.resolve(Service).config, Config)


class TestAnnotatedDefaults(unittest.TestCase):
    inj: Injector

    def setUp(self):
        self.inj = Injector()
        self.inj.register(Config)

    def test_annotated_default_used_when_type_not_registered(self):
        class Client:
            def __init__(self, config: Config, timeout: float = 1.0):
                self.config = config
                self.timeout = timeout

        self.inj.register(Client)

        client = self.inj.resolve(Client)
        assert client.timeout == 1.0
        assert isinstance(client.config, Config)

    def test_registered_type_wins_over_default(self):
        class Client:
            def __init__(self, timeout: float = 1.0):
                self.timeout = timeout

        self.inj.register(Client)
        self.inj.register(lambda: 30.0, provides=float)

        assert self.inj.resolve(Client).timeout == 30.0

    def test_positional_only_default_keeps_argument_order(self):
        def make_service(timeout: float = 2.5, config: Config = None, /) -> Service:  # type: ignore[assignment]
            svc = Service(config)
            svc.timeout = timeout
            return svc

        self.inj.register(make_service)

        svc = self.inj.resolve(Service)
        assert svc.timeout == 2.5
        assert isinstance(svc.config, Config)

    def test_annotated_parameter_without_default_still_required(self):
        class Client:
            def __init__(self, timeout: float):
                self.timeout = timeout

        self.inj.register(Client)

        with pytest.raises(BuilderNotFoundError) as ctx:
            self.inj.resolve(Client)
        assert ctx.value.key is float


class TestPartialBuilders(unittest.TestCase):
    inj: Injector

    def setUp(self):
        self.inj = Injector()
        self.inj.register(Config)

    def test_partial_keeps_wrapped_annotations(self):
        def make_service(config: Config, name: str) -> Service:
            svc = Service(config)
            svc.name = name
            return svc

        assert self.inj.register(functools.partial(make_service, name="primary")) is Service

        svc = self.inj.resolve(Service)
        assert svc.name == "primary"
        assert isinstance(svc.config, Config)

    def test_partial_can_be_called_directly(self):
        def controller(config: Config, prefix: str):
            return prefix, config

        prefix, config = self.inj.call(functools.partial(controller, prefix="/api"))

        assert prefix == "/api"
        assert isinstance(config, Config)
