import pytest

from singerpipe.bootstrap import load_plugins
from singerpipe.tap.registry import TapRegistry, TapRegistryError, register_tap


def setup_function() -> None:
    TapRegistry.clear()


def test_register_and_get_round_trip():
    class Dummy:
        pass

    TapRegistry.register(name="dummy", tap_class=Dummy)

    assert TapRegistry.get("dummy") is Dummy
    assert TapRegistry.try_get("dummy") is Dummy
    assert TapRegistry.names() == ["dummy"]


def test_get_missing_raises_helpful_error():
    with pytest.raises(TapRegistryError, match="No tap registered"):
        TapRegistry.get("dummy")


def test_duplicate_registration_raises_by_default():
    class Dummy1:
        pass

    class Dummy2:
        pass

    TapRegistry.register(name="dummy", tap_class=Dummy1)

    with pytest.raises(TapRegistryError, match="already registered"):
        TapRegistry.register(name="dummy", tap_class=Dummy2)

    TapRegistry.register(name="dummy", tap_class=Dummy2, overwrite=True)
    assert TapRegistry.get("dummy") is Dummy2


def test_register_tap_decorator_registers_class():
    @register_tap("dummy")
    class Dummy:
        pass

    assert TapRegistry.get("dummy") is Dummy


def test_load_plugins_imports_modules(tmp_path, monkeypatch):
    (tmp_path / "my_taps_plugin.py").write_text(
        "from singerpipe.tap.registry import register_tap\n"
        "@register_tap('plugin-tap')\n"
        "class PluginTap:\n"
        "    pass\n"
    )
    monkeypatch.syspath_prepend(str(tmp_path))

    load_plugins(["my_taps_plugin"])
    assert TapRegistry.try_get("plugin-tap") is not None

    TapRegistry.clear()
    load_plugins(["my_taps_plugin"])
    assert TapRegistry.try_get("plugin-tap") is None

    load_plugins(["my_taps_plugin"], reload=True)
    assert TapRegistry.try_get("plugin-tap") is not None
