"""Tests for the declarative difference pipeline."""
import pytest

from veilrag.shared.pipeline import (
    DIFFERENCE_PIPELINE,
    BindVariable,
    Pipeline,
    Project,
    ZipSubtract,
)


class TestDifferencePipeline:
    """Test serialization and evaluation of the stored pipeline."""

    def test_wire_form(self):
        stages = DIFFERENCE_PIPELINE.to_wire()

        assert stages[0] == {"$addFields": {"query_embedding": "##query_embedding"}}
        project = stages[1]["$project"]
        assert project["_id"] == 1
        assert project["difference"]["$map"]["input"] == {
            "$zip": {"inputs": ["$embedding", "$query_embedding"]}
        }

    def test_wire_round_trip(self):
        parsed = Pipeline.from_wire(DIFFERENCE_PIPELINE.to_wire(), DIFFERENCE_PIPELINE.variables)
        assert parsed == DIFFERENCE_PIPELINE

    def test_run(self):
        docs = [
            {"_id": "a", "embedding": [10, 20, 30], "chunk": "x"},
            {"_id": "b", "embedding": [1, 1, 1], "chunk": "y"},
        ]

        out = DIFFERENCE_PIPELINE.run(docs, {"query_embedding": [1, 2, 3]})

        assert out == [
            {"_id": "a", "difference": [9, 18, 27]},
            {"_id": "b", "difference": [0, -1, -2]},
        ]
        # stored documents are untouched
        assert "query_embedding" not in docs[0]

    def test_missing_variable(self):
        with pytest.raises(ValueError, match="query_embedding"):
            DIFFERENCE_PIPELINE.run([], {})

    def test_unsupported_stage(self):
        with pytest.raises(ValueError, match="Unsupported"):
            Pipeline.from_wire([{"$group": {"_id": None}}])
        with pytest.raises(ValueError, match="Unsupported"):
            Pipeline.from_wire([{"$addFields": {"x": 1}}])

    def test_custom_pipeline(self):
        pipeline = Pipeline(
            steps=(
                BindVariable("q"),
                Project(include=(), computed=(("d", ZipSubtract("v", "q")),)),
            ),
        )
        assert pipeline.run([{"v": [5, 5]}], {"q": [2, 3]}) == [{"d": [3, 2]}]
