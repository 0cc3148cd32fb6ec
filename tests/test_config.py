"""
Tests for store options.
"""

import json

import pytest
import yaml

from rdf_sqlstore import StoreOptions


class TestStoreOptions:
    """Tests for StoreOptions defaults and validation."""

    def test_defaults(self):
        options = StoreOptions()
        assert options.select_timeout == 120
        assert options.delete_timeout == 120
        assert options.insert_timeout == 120
        assert options.pool_size == 1
        assert options.pool_timeout == 30.0

    def test_timeouts_by_category(self):
        options = StoreOptions(select_timeout=5, insert_timeout=10, delete_timeout=15)
        assert options.timeouts() == {"select": 5, "insert": 10, "delete": 15}

    @pytest.mark.parametrize("kwargs", [
        {"select_timeout": 0},
        {"delete_timeout": -1},
        {"insert_timeout": 1.5},
        {"insert_timeout": True},
        {"pool_size": 0},
        {"pool_timeout": 0},
    ])
    def test_invalid_values(self, kwargs):
        with pytest.raises(ValueError):
            StoreOptions(**kwargs)

    def test_dict_round_trip(self):
        options = StoreOptions(select_timeout=30, pool_size=4)
        assert StoreOptions.from_dict(options.to_dict()) == options

    def test_unknown_keys_ignored(self, caplog):
        options = StoreOptions.from_dict({"select_timeout": 7, "colour": "blue"})
        assert options.select_timeout == 7
        assert "colour" in caplog.text


class TestOptionFiles:
    """Tests for loading options from files."""

    def test_from_yaml(self, tmp_path):
        path = tmp_path / "store.yaml"
        path.write_text(yaml.safe_dump({"delete_timeout": 60, "pool_size": 2}))

        options = StoreOptions.from_file(path)
        assert options.delete_timeout == 60
        assert options.pool_size == 2
        assert options.select_timeout == 120

    def test_from_json(self, tmp_path):
        path = tmp_path / "store.json"
        path.write_text(json.dumps({"insert_timeout": 15}))

        assert StoreOptions.from_file(path).insert_timeout == 15

    def test_empty_yaml_gives_defaults(self, tmp_path):
        path = tmp_path / "store.yml"
        path.write_text("")

        assert StoreOptions.from_file(path) == StoreOptions()

    def test_non_mapping_rejected(self, tmp_path):
        path = tmp_path / "store.json"
        path.write_text("[1, 2]")

        with pytest.raises(ValueError):
            StoreOptions.from_file(str(path))

    def test_invalid_value_in_file(self, tmp_path):
        path = tmp_path / "store.yaml"
        path.write_text("pool_size: 0\n")

        with pytest.raises(ValueError):
            StoreOptions.from_file(path)
