"""
Tests for Environment Filter
"""

import pytest

from statsguard.validation.environment import (
    check_environment,
    declared_environments,
    is_feature_active,
)
from statsguard.validation.errors import InvalidArgumentError
from statsguard.validation.schema import Feature, FeatureType, Schema


def _feature(**kwargs) -> Feature:
    return Feature(name="label", type=FeatureType.INT, **kwargs)


def test_no_environment_everything_active():
    assert is_feature_active(_feature(not_in_environment=["SERVING"]), None)


def test_not_in_environment_wins():
    """Test exclusion beats an explicit inclusion."""
    feature = _feature(in_environment=["SERVING"], not_in_environment=["SERVING"])

    assert not is_feature_active(feature, "SERVING")


def test_in_environment_overrides_defaults():
    feature = _feature(in_environment=["TRAINING"])

    assert is_feature_active(feature, "TRAINING", ["SERVING"])
    assert not is_feature_active(feature, "SERVING", ["SERVING"])


def test_default_environments():
    """Test features without in_environment follow the schema defaults."""
    assert is_feature_active(_feature(), "SERVING", ["TRAINING", "SERVING"])
    assert not is_feature_active(_feature(), "EVAL", ["TRAINING"])
    assert is_feature_active(_feature(), "EVAL", [])


def test_declared_environments():
    schema = Schema(
        default_environments=["TRAINING"],
        features=[_feature(in_environment=["EVAL"], not_in_environment=["SERVING"])],
    )

    assert declared_environments(schema) == {"TRAINING", "EVAL", "SERVING"}


def test_check_environment():
    """Test unknown names fail only when the schema declares environments."""
    schema = Schema(default_environments=["TRAINING"])

    check_environment(schema, "TRAINING")
    check_environment(schema, None)
    check_environment(Schema(), "ANYTHING")
    with pytest.raises(InvalidArgumentError, match="Unknown environment 'SERVING'"):
        check_environment(schema, "SERVING")
