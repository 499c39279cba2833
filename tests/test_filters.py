from configure_kit.filters import ArtifactFilter, parse_filter, should_include
from configure_kit.models import Artifact, Package


def test_parse_filter_trims_and_drops_empty_items() -> None:
    assert parse_filter(" Pkg1, ,Pkg2 ,") == ("Pkg1", "Pkg2")
    assert parse_filter("") == ()
    assert parse_filter(None) == ()


def test_empty_filter_includes_everything() -> None:
    assert should_include("anything", ())


def test_filter_is_case_sensitive() -> None:
    assert should_include("Pkg1", ("Pkg1",))
    assert not should_include("pkg1", ("Pkg1",))


def test_artifact_filter_matches_declared_ids() -> None:
    flt = ArtifactFilter.from_strings("Pkg1", "Flow2")

    assert flt.include_package(Package(id="Pkg1"))
    assert not flt.include_package(Package(id="Pkg2"))
    assert flt.include_artifact(Artifact(id="Flow2", type="Integration"))
    assert not flt.include_artifact(Artifact(id="Flow1", type="Integration"))
