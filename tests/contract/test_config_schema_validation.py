from __future__ import annotations

import json

import jsonschema
import pytest
import yaml
from jsonschema.exceptions import ValidationError

from sheet_sync.config.loader import SCHEMA_PATH

"""Config schema contract: the shipped config/sync.yml is valid, drift is not."""


@pytest.fixture()
def schema() -> dict:
    return json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))


def test_shipped_config_is_valid(schema, sample_config_yaml):
    jsonschema.validate(yaml.safe_load(sample_config_yaml), schema)


def test_minimal_config_is_valid(schema):
    config = {
        "natural_key": {"field": "seller_number", "column": "売主番号"},
        "spreadsheet_to_database": {"売主番号": "seller_number"},
        "database_to_spreadsheet": {"seller_number": "売主番号"},
        "field_types": {"seller_number": "string"},
        "required_fields": ["seller_number"],
    }
    jsonschema.validate(config, schema)


@pytest.mark.parametrize(
    "mutation",
    [
        lambda c: c.pop("natural_key"),
        lambda c: c["natural_key"].pop("column"),
        lambda c: c.update(spreadsheet_to_database={}),
        lambda c: c["field_types"].update(seller_number="varchar"),
        lambda c: c.update(required_fields="seller_number"),
        lambda c: c.update(date_policy="nearest"),
        lambda c: c.update(special_fields={"currency_scale": 0}),
        lambda c: c.update(property={"owner_field": "seller_id"}),
    ],
)
def test_invalid_configs_rejected(schema, mutation):
    config = {
        "natural_key": {"field": "seller_number", "column": "売主番号"},
        "spreadsheet_to_database": {"売主番号": "seller_number"},
        "database_to_spreadsheet": {"seller_number": "売主番号"},
        "field_types": {"seller_number": "string"},
        "required_fields": ["seller_number"],
    }
    mutation(config)
    with pytest.raises(ValidationError):
        jsonschema.validate(config, schema)
