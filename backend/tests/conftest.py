import sys
from pathlib import Path

# Add the backend root directory to Python path first
backend_root = Path(__file__).parent.parent
sys.path.insert(0, str(backend_root))

"""
Pytest configuration and fixtures for the merge tests.
"""

import json

import pytest

from models.merge import InputFile
from services.storage.working_set_store import clear_working_sets


def make_feature(properties=None, coordinates=(127.0, 37.5), **extra):
    feature = {
        "type": "Feature",
        "geometry": {"type": "Point", "coordinates": list(coordinates)},
        "properties": properties if properties is not None else {},
    }
    feature.update(extra)
    return feature


def make_collection(*features, **extra):
    collection = {"type": "FeatureCollection", "features": list(features)}
    collection.update(extra)
    return collection


def make_input_file(name, document):
    return InputFile(name=name, raw_content=json.dumps(document).encode("utf-8"))


@pytest.fixture(autouse=True)
def empty_working_sets():
    clear_working_sets()
    yield
    clear_working_sets()


@pytest.fixture
def floor_file():
    """Floor plan file with two features."""
    return make_input_file(
        "gangnam_floor_b1.geojson",
        make_collection(
            make_feature({"id": 101, "name": "Hall A"}, coordinates=(127.01, 37.51)),
            make_feature({"id": 102, "name": "Hall B"}, coordinates=(127.02, 37.52)),
        ),
    )


@pytest.fixture
def poi_file():
    """POI file whose property names are truncated to ten characters."""
    return make_input_file(
        "gangnam_poi_b1.json",
        make_collection(
            make_feature(
                {
                    "id": "poi-1",
                    "name": "Cafe",
                    "created_da": "2020-01-01",
                    "business_h": "09:00-18:00",
                    "store_numb": "B1-07",
                },
                coordinates=(127.03, 37.53),
            ),
        ),
    )


@pytest.fixture
def report_file():
    """File without a category in its name."""
    return make_input_file(
        "report.json",
        make_collection(make_feature({"name": "Summary"}, coordinates=(127.04, 37.54))),
    )
