import pytest

from singerpipe.core.exceptions import InvalidOptionError, OptionError, OptionNotSetError
from singerpipe.models.tap_context import TapContext


def test_get_option_returns_set_value():
    ctx = TapContext(config="/tmp/config.json")

    assert ctx.get_option("config") == "/tmp/config.json"


def test_unknown_option_and_unset_option_are_distinct_errors():
    ctx = TapContext()

    with pytest.raises(InvalidOptionError) as invalid:
        ctx.get_option("verbose")
    with pytest.raises(OptionNotSetError) as unset:
        ctx.get_option("catalog")

    assert invalid.value.option == "verbose"
    assert unset.value.option == "catalog"
    assert not isinstance(invalid.value, OptionNotSetError)
    assert isinstance(unset.value, OptionError)


def test_set_option_returns_previous_value():
    ctx = TapContext()

    assert ctx.set_option("state", "a.json") is None
    assert ctx.set_option("state", "b.json") == "a.json"
    assert ctx.state == "b.json"


def test_set_option_rejects_unknown_key():
    with pytest.raises(InvalidOptionError):
        TapContext().set_option("output", "x")


def test_try_get_option_only_hides_unset():
    ctx = TapContext()

    assert ctx.try_get_option("properties") is None
    with pytest.raises(InvalidOptionError):
        ctx.try_get_option("nope")


def test_sync_args_include_only_set_options():
    ctx = TapContext(config="c.json", state="s.json")

    assert ctx.sync_args() == ["--config", "c.json", "--state", "s.json"]

    ctx.set_option("catalog", "cat.json")
    ctx.set_option("properties", "p.json")
    assert ctx.sync_args() == [
        "--config", "c.json",
        "--catalog", "cat.json",
        "--state", "s.json",
        "--properties", "p.json",
    ]


def test_args_require_config():
    with pytest.raises(OptionNotSetError):
        TapContext(catalog="cat.json").sync_args()
    with pytest.raises(OptionNotSetError):
        TapContext().discover_args()
    assert TapContext(config="c.json").discover_args() == ["--config", "c.json", "--discover"]


def test_from_paths_skips_unset_and_rejects_unknown_names():
    ctx = TapContext.from_paths({"config": "c.json", "catalog": None, "state": "s.json"})

    assert ctx == TapContext(config="c.json", state="s.json")
    with pytest.raises(InvalidOptionError):
        TapContext.from_paths({"config": "c.json", "verbose": None})
