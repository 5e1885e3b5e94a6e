"""
Simulation Configuration
========================

Dataclass sections of a simulation input file and their JSON loader.

Example input::

    {
        "mesh": {"rectangle": {"size": [1, 1], "divisions": [8, 8]},
                 "initial_refinement_level": 1, "n_adaptive_steps": 2},
        "material": {"young_modulus": 1e3, "poisson_ratio": 0.3,
                     "fracture_toughness": 1.0,
                     "regularization_epsilon_factor": 2.0},
        "boundary_conditions": {"displacement": [
            {"boundary_id": 2, "component": "y", "value": 0.0},
            {"boundary_id": 3, "component": "y", "velocity": 1e-3}]},
        "defects": [[[0.3, 0.5], [0.7, 0.5]]],
        "pressure": {"table": [[0, 0], [1, 10]]},
        "time_stepping": {"t_max": 1.0, "table": [[0, 0.1]],
                          "minimum_time_step": 1e-6}
    }
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .exceptions import ConfigurationError
from .physics.material import PhaseFieldMaterial
from .assembly.boundary_conditions import DisplacementBC, PointDisplacement
from .solvers.newton_solver import NewtonConfig
from .postprocess.postprocessing import PostprocessingSpec, POSTPROCESSORS


Segment = Tuple[Tuple[float, float], Tuple[float, float]]


@dataclass
class MeshConfig:
    """Mesh source and refinement parameters."""
    file: Optional[str] = None                  # Gmsh file; overrides the rectangle
    size: Tuple[float, float] = (1.0, 1.0)      # Rectangle extent (Lx, Ly)
    divisions: Tuple[int, int] = (8, 8)         # Rectangle cells per direction
    pattern: str = 'right'                      # Diagonal pattern of the rectangle
    initial_refinement_level: int = 0           # Global red refinements
    n_adaptive_steps: int = 0                   # Mesh-size halvings beyond the global ones
    phi_refinement_value: float = 0.5           # Refine cells with min φ below this
    coarsening_value: float = 0.95              # Coarsen bisected cells with min φ above this
    local_prerefinement_region: Optional[List[List[float]]] = None  # [[x0, x1], [y0, y1]]

    @property
    def max_refinement_level(self) -> int:
        """Number of times the coarse cell size is halved on the finest cells."""
        return self.initial_refinement_level + self.n_adaptive_steps

    @property
    def max_cell_level(self) -> int:
        """Finest cell level; two bisections halve a cell."""
        return 2 * self.max_refinement_level


@dataclass
class BoundaryConfig:
    """Labelled and point displacement constraints."""
    displacement: List[DisplacementBC] = field(default_factory=list)
    points: List[PointDisplacement] = field(default_factory=list)


@dataclass
class PressureConfig:
    """Pressure curve and crack indicator."""
    table: List[Tuple[float, float]] = field(default_factory=lambda: [(0.0, 0.0)])
    mode: str = 'crack'
    threshold: float = 0.9


@dataclass
class TimeSteppingConfig:
    """End time, step-size table and the smallest admissible step."""
    t_max: float = 1.0
    table: List[Tuple[float, float]] = field(default_factory=lambda: [(0.0, 0.1)])
    minimum_time_step: float = 1e-8


@dataclass
class OutputConfig:
    """Where and what to write."""
    directory: Optional[str] = None
    write_vtu: bool = True


@dataclass
class SimulationConfig:
    """
    Complete description of a pressurized fracture simulation.

    Attributes:
        mesh: MeshConfig
        material: PhaseFieldMaterial (epsilon may still be mesh-dependent)
        boundary_conditions: BoundaryConfig
        defects: initial crack segments
        defect_width: half-width of the initial crack band; derived from
            the mesh size when None
        pressure: PressureConfig
        time_stepping: TimeSteppingConfig
        newton: NewtonConfig
        linear_solver: 'direct' or 'gmres'
        postprocessing: list of PostprocessingSpec
        output: OutputConfig
    """
    material: PhaseFieldMaterial
    mesh: MeshConfig = field(default_factory=MeshConfig)
    boundary_conditions: BoundaryConfig = field(default_factory=BoundaryConfig)
    defects: List[Segment] = field(default_factory=list)
    defect_width: Optional[float] = None
    pressure: PressureConfig = field(default_factory=PressureConfig)
    time_stepping: TimeSteppingConfig = field(default_factory=TimeSteppingConfig)
    newton: NewtonConfig = field(default_factory=NewtonConfig)
    linear_solver: str = 'direct'
    postprocessing: List[PostprocessingSpec] = field(default_factory=list)
    output: OutputConfig = field(default_factory=OutputConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SimulationConfig':
        """
        Build a configuration from a parsed input file.

        Args:
            data: dictionary with the sections mesh, material,
                boundary_conditions, defects, pressure, time_stepping,
                newton, postprocessing and output

        Returns:
            SimulationConfig

        Raises:
            ConfigurationError: on missing keys, wrong types or unknown names
        """
        if not isinstance(data, dict):
            raise ConfigurationError("input must be a JSON object")
        unknown = set(data) - _SECTIONS
        if unknown:
            raise ConfigurationError(f"Unknown sections: {sorted(unknown)}")

        try:
            config = cls(
                material=_parse_material(_section(data, 'material', required=True)),
                mesh=_parse_mesh(_section(data, 'mesh')),
                boundary_conditions=_parse_boundary(_section(data, 'boundary_conditions')),
                defects=_parse_defects(data.get('defects', [])),
                defect_width=_optional_float(data.get('defect_width')),
                pressure=_parse_pressure(_section(data, 'pressure')),
                time_stepping=_parse_time_stepping(_section(data, 'time_stepping', required=True)),
                newton=_parse_newton(_section(data, 'newton')),
                linear_solver=str(_section(data, 'newton').get('linear_solver', 'direct')),
                postprocessing=_parse_postprocessing(data.get('postprocessing', [])),
                output=_parse_output(_section(data, 'output')),
            )
        except ConfigurationError:
            raise
        except (TypeError, ValueError, KeyError, IndexError) as e:
            raise ConfigurationError(f"Malformed input: {e}") from e

        if config.linear_solver not in ('direct', 'gmres'):
            raise ConfigurationError(f"Unknown linear solver: {config.linear_solver}")
        return config


_SECTIONS = {'mesh', 'material', 'boundary_conditions', 'defects', 'defect_width',
             'pressure', 'time_stepping', 'newton', 'postprocessing', 'output'}


def load_config(path: str) -> SimulationConfig:
    """
    Read a JSON input file.

    Args:
        path: input file path

    Returns:
        SimulationConfig
    """
    try:
        with open(path, 'r') as f:
            data = json.load(f)
    except OSError as e:
        raise ConfigurationError(f"Cannot read input file {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in {path}: {e}") from e
    return SimulationConfig.from_dict(data)


def _section(data: Dict[str, Any], name: str, required: bool = False) -> Dict[str, Any]:
    if name not in data:
        if required:
            raise ConfigurationError(f"Missing section '{name}'")
        return {}
    section = data[name]
    if not isinstance(section, dict):
        raise ConfigurationError(f"Section '{name}' must be an object")
    return section


def _require(section: Dict[str, Any], key: str, where: str) -> Any:
    if key not in section:
        raise ConfigurationError(f"Missing key '{key}' in section '{where}'")
    return section[key]


def _optional_float(value) -> Optional[float]:
    return None if value is None else float(value)


def _pairs(values, where: str) -> List[Tuple[float, float]]:
    pairs = [(float(a), float(b)) for a, b in values]
    if not pairs:
        raise ConfigurationError(f"'{where}' must not be empty")
    return pairs


def _parse_material(section: Dict[str, Any]) -> PhaseFieldMaterial:
    epsilon = _optional_float(section.get('regularization_epsilon'))
    factor = _optional_float(section.get('regularization_epsilon_factor'))
    return PhaseFieldMaterial(
        E=float(_require(section, 'young_modulus', 'material')),
        nu=float(_require(section, 'poisson_ratio', 'material')),
        Gc=float(section.get('fracture_toughness', 1.0)),
        epsilon=epsilon,
        kappa=float(section.get('regularization_kappa', 1e-10)),
        biot=float(section.get('biot_coefficient', 1.0)),
        penalty=float(section.get('penalty', 10.0)),
        epsilon_factor=factor,
    )


def _parse_mesh(section: Dict[str, Any]) -> MeshConfig:
    config = MeshConfig(
        file=section.get('file'),
        initial_refinement_level=int(section.get('initial_refinement_level', 0)),
        n_adaptive_steps=int(section.get('n_adaptive_steps', 0)),
        phi_refinement_value=float(section.get('phi_refinement_value', 0.5)),
        coarsening_value=float(section.get('coarsening_value', 0.95)),
        local_prerefinement_region=section.get('local_prerefinement_region'),
    )
    rectangle = section.get('rectangle', {})
    if config.file is None and not rectangle and section:
        raise ConfigurationError("Section 'mesh' needs either 'file' or 'rectangle'")
    if rectangle:
        size = rectangle.get('size', [1.0, 1.0])
        divisions = rectangle.get('divisions', [8, 8])
        config.size = (float(size[0]), float(size[1]))
        config.divisions = (int(divisions[0]), int(divisions[1]))
        config.pattern = str(rectangle.get('pattern', 'right'))

    if config.initial_refinement_level < 0 or config.n_adaptive_steps < 0:
        raise ConfigurationError("refinement levels must be non-negative")
    region = config.local_prerefinement_region
    if region is not None:
        if len(region) != 2 or any(len(r) != 2 for r in region):
            raise ConfigurationError(
                "local_prerefinement_region must be [[x0, x1], [y0, y1]]")
        config.local_prerefinement_region = [[float(a), float(b)] for a, b in region]
    return config


def _parse_boundary(section: Dict[str, Any]) -> BoundaryConfig:
    config = BoundaryConfig()
    for entry in section.get('displacement', []):
        config.displacement.append(DisplacementBC(
            boundary_id=int(_require(entry, 'boundary_id', 'boundary_conditions')),
            component=_component(_require(entry, 'component', 'boundary_conditions')),
            value=float(entry.get('value', 0.0)),
            velocity=float(entry.get('velocity', 0.0)),
        ))
    for entry in section.get('points', []):
        point = _require(entry, 'point', 'boundary_conditions')
        config.points.append(PointDisplacement(
            point=(float(point[0]), float(point[1])),
            component=_component(_require(entry, 'component', 'boundary_conditions')),
            velocity=float(entry.get('velocity', 0.0)),
        ))
    return config


def _component(value):
    if value in ('x', 'y', 0, 1):
        return value
    raise ConfigurationError(f"Unknown displacement component: {value!r}")


def _parse_defects(values) -> List[Segment]:
    defects = []
    for segment in values:
        (x0, y0), (x1, y1) = segment
        defects.append(((float(x0), float(y0)), (float(x1), float(y1))))
    return defects


def _parse_pressure(section: Dict[str, Any]) -> PressureConfig:
    config = PressureConfig(
        mode=str(section.get('mode', 'crack')),
        threshold=float(section.get('threshold', 0.9)),
    )
    if 'table' in section:
        config.table = _pairs(section['table'], 'pressure.table')
    if config.mode not in ('crack', 'uniform'):
        raise ConfigurationError(f"Unknown pressure mode: {config.mode}")
    return config


def _parse_time_stepping(section: Dict[str, Any]) -> TimeSteppingConfig:
    config = TimeSteppingConfig(
        t_max=float(_require(section, 't_max', 'time_stepping')),
        table=_pairs(_require(section, 'table', 'time_stepping'), 'time_stepping.table'),
        minimum_time_step=float(section.get('minimum_time_step', 1e-8)),
    )
    if config.t_max <= 0 or config.minimum_time_step <= 0:
        raise ConfigurationError("t_max and minimum_time_step must be positive")
    return config


def _parse_newton(section: Dict[str, Any]) -> NewtonConfig:
    return NewtonConfig(
        tolerance=float(section.get('tolerance', 1e-5)),
        max_iterations=int(section.get('max_iterations', 50)),
        max_line_search_steps=int(section.get('max_line_search_steps', 5)),
        verbose=bool(section.get('verbose', True)),
    )


def _parse_postprocessing(values: Sequence[Dict[str, Any]]) -> List[PostprocessingSpec]:
    specs = []
    for entry in values:
        name = _require(entry, 'name', 'postprocessing')
        if name not in POSTPROCESSORS:
            raise ConfigurationError(f"Unknown postprocessing task: {name}")
        args = entry.get('args', [])
        if not isinstance(args, list):
            args = [args]
        try:
            specs.append(PostprocessingSpec(name, args))
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"postprocessing task {name}: {e}") from e
    return specs


def _parse_output(section: Dict[str, Any]) -> OutputConfig:
    return OutputConfig(
        directory=section.get('directory'),
        write_vtu=bool(section.get('write_vtu', True)),
    )
