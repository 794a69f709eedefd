"""
Tests for simulation parameters, architecture presets and project settings.
"""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from oscsim.data.osc_parameters import (
    MorphologyType,
    RunMode,
    SimulationParameters,
    get_parameters_for_architecture,
    load_parameters,
)
from oscsim.kmc.errors import ConfigurationError
from oscsim.kmc.simulator import OSCSimulator
from oscsim.settings import LogConfig, PathConfig, RuntimeConfig, Settings

CONFIGS_DIR = Path(__file__).parent / "configs"


def test_default_parameters_are_consistent():
    params = SimulationParameters()
    assert params.check_parameters() == []
    assert params.volume == pytest.approx(50**3 * 1e-21)
    assert params.n_initial_excitons == 2


@pytest.mark.parametrize(
    "fields, message",
    [
        ({"morphology": MorphologyType.BILAYER, "thickness_donor": 10}, "add up to the height"),
        ({"run_mode": RunMode.TOF, "enable_periodic_z": True}, "non-periodic"),
        ({"run_mode": RunMode.STEADY_TRANSPORT}, "periodic z-direction"),
        ({"fret_cutoff": 4.0}, "recalc_cutoff"),
        ({"enable_correlated_disorder": True}, "gaussian DOS model"),
        ({"morphology": MorphologyType.IMPORT}, "morphology_filename"),
    ],
)
def test_inconsistent_parameters_rejected(fields, message):
    with pytest.raises(ValidationError, match=message):
        SimulationParameters(**fields)


def test_unknown_parameter_rejected():
    with pytest.raises(ValidationError):
        SimulationParameters(lenght=10)


def test_simulator_rechecks_unvalidated_parameters():
    params = SimulationParameters.model_construct(run_mode=RunMode.TOF, enable_periodic_z=True)
    with pytest.raises(ConfigurationError):
        OSCSimulator(params, seed=0)


@pytest.mark.parametrize("path", sorted(CONFIGS_DIR.glob("*.yaml")), ids=lambda p: p.stem)
def test_shipped_parameter_files_load(path):
    params = load_parameters(path)
    assert params.check_parameters() == []


def test_load_parameters_keeps_defaults(tmp_path):
    path = tmp_path / "params.yaml"
    path.write_text("run_mode: dynamics\nlength: 10\nwidth: 10\nheight: 10\n")
    params = load_parameters(path)
    assert params.run_mode == RunMode.DYNAMICS
    assert params.length == 10
    assert params.temperature == 300.0


@pytest.mark.parametrize("architecture", ["neat", "bilayer", "random_blend"])
def test_architecture_presets(architecture):
    params = get_parameters_for_architecture(architecture)
    assert params.morphology == MorphologyType(architecture)
    assert params.check_parameters() == []
    params.length = 7
    assert get_parameters_for_architecture(architecture).length == 50


def test_unknown_architecture():
    with pytest.raises(ValueError, match="Unknown architecture"):
        get_parameters_for_architecture("tandem")


def test_log_level_validation():
    assert LogConfig(level="debug").level == "DEBUG"
    with pytest.raises(ValidationError):
        LogConfig(level="verbose")


def test_replica_seeds():
    assert RuntimeConfig(seed=10).replica_seed(3) == 13
    assert RuntimeConfig().replica_seed(3) is None


def test_resolve_config(tmp_path):
    (tmp_path / "run.yaml").write_text("n_tests: 5\n")
    paths = PathConfig(configs_dir=tmp_path)
    assert paths.resolve_config("run") == tmp_path / "run.yaml"
    assert paths.resolve_config("run.yaml") == tmp_path / "run.yaml"
    assert paths.resolve_config(tmp_path / "run.yaml") == tmp_path / "run.yaml"
    with pytest.raises(FileNotFoundError):
        paths.resolve_config("missing")


def test_settings_default_parameters_and_metadata(tmp_path):
    settings = Settings(
        default_architecture="bilayer",
        paths=PathConfig(results_dir=tmp_path / "out"),
        runtime=RuntimeConfig(seed=1, n_replicas=2),
    )
    assert settings.default_parameters().morphology == MorphologyType.BILAYER
    metadata = settings.run_metadata()
    assert metadata["runtime"]["n_replicas"] == 2
    assert metadata["paths"]["results_dir"] == str(tmp_path / "out")
    settings.paths.ensure_dirs()
    assert (tmp_path / "out").is_dir()
