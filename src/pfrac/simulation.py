"""
Pressurized Fracture Simulation
===============================

Wires mesh, material, solvers and output together from a SimulationConfig
and drives them through time.

Setup:
    1. Build the coarse mesh (Gmsh file or rectangle)
    2. Minimum mesh size = coarse diameter / 2^(initial + adaptive levels);
       resolve mesh-dependent epsilon and the default defect width from it
    3. Global refinement, then local prerefinement of the given region:
       two bisection sweeps per adaptive level, so the finest cells reach
       the minimum mesh size
    4. Initial phase field from the defects

Each time step (see TimeStepController):
    pressure update -> displacement BCs -> Newton -> cut / refine / accept
"""

import os
import numpy as np
from dataclasses import replace
from typing import Callable, List, Optional

from .config import SimulationConfig
from .mesh.triangle_mesh import TriangleMesh
from .mesh.mesh_generators import create_rectangle_mesh, refine_mesh
from .mesh.mesh_io import read_gmsh
from .mesh.adaptivity import longest_edge_labeling, refine_region
from .mesh.dof_handler import DoFHandler
from .physics.initial_values import defect_phase_field
from .physics.pressure import PressureFunction, PressureCoupler
from .assembly.boundary_conditions import BoundaryConditionManager
from .assembly.coupled_assembly import CoupledResidualAssembler
from .solvers.solution_history import SolutionHistory
from .solvers.active_set import ActiveSetTracker
from .solvers.linear_solver import LinearSolver
from .solvers.newton_solver import NewtonActiveSetSolver, NewtonResult
from .solvers.time_stepping import TimeSteppingTable, TimeStepController, StepRecord
from .solvers.mesh_refiner import AdaptiveMeshRefiner
from .postprocess.output import StepSnapshot, SolutionWriter
from .postprocess.postprocessing import PostprocessingRunner


class PressurizedFractureSimulation:
    """
    Complete pressurized phase-field fracture simulation.

    Implements the problem hooks of TimeStepController.

    Attributes:
        config: SimulationConfig
        minimum_mesh_size: smallest cell diameter the refiner can reach
        material: PhaseFieldMaterial with resolved epsilon
        dof_handler: owner of the current mesh
        history: SolutionHistory
        pressure_coupler: PressureCoupler
        boundary_conditions: BoundaryConditionManager
        assembler: CoupledResidualAssembler
        newton: NewtonActiveSetSolver
        refiner: AdaptiveMeshRefiner, or None without adaptive steps
        controller: TimeStepController
        writer: SolutionWriter, or None without VTU output
        postprocessor: PostprocessingRunner
        snapshots: StepSnapshot of every accepted step
    """

    def __init__(self, config: SimulationConfig, verbose: bool = True):
        self.config = config
        self.verbose = verbose
        mesh_config = config.mesh

        coarse = self._coarse_mesh()
        self.minimum_mesh_size = (coarse.minimum_cell_diameter() /
                                  2 ** mesh_config.max_refinement_level)
        self.material = config.material.with_mesh_size(self.minimum_mesh_size)

        self.dof_handler = DoFHandler(self._refined_mesh(coarse))
        self.history = SolutionHistory.from_initial(self._initial_solution())

        self.pressure_coupler = PressureCoupler(
            self.dof_handler, PressureFunction(config.pressure.table),
            mode=config.pressure.mode, threshold=config.pressure.threshold)
        self.boundary_conditions = BoundaryConditionManager(
            self.dof_handler, config.boundary_conditions.displacement,
            config.boundary_conditions.points)

        self.assembler = CoupledResidualAssembler(self.dof_handler, self.material)
        newton_config = replace(config.newton, verbose=config.newton.verbose and verbose)
        self.newton = NewtonActiveSetSolver(
            self.assembler,
            ActiveSetTracker(self.dof_handler, self.material.penalty),
            LinearSolver(method=config.linear_solver),
            newton_config)

        self.refiner: Optional[AdaptiveMeshRefiner] = None
        if mesh_config.n_adaptive_steps > 0:
            self.refiner = AdaptiveMeshRefiner(
                self.dof_handler, mesh_config.max_cell_level,
                phi_refinement_value=mesh_config.phi_refinement_value,
                coarsening_value=mesh_config.coarsening_value,
                verbose=verbose)

        ts = config.time_stepping
        self.controller = TimeStepController(TimeSteppingTable(ts.table), ts.t_max,
                                             ts.minimum_time_step, verbose=verbose)

        output = config.output
        self.writer: Optional[SolutionWriter] = None
        if output.directory is not None and output.write_vtu:
            self.writer = SolutionWriter(output.directory)
        self.postprocessor = PostprocessingRunner(config.postprocessing, output.directory)

        self.snapshots: List[StepSnapshot] = []
        self.last_result: Optional[NewtonResult] = None
        self._post_step_hooks: List[Callable[[StepSnapshot], None]] = []

        if verbose:
            self.print_parameters()

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def _coarse_mesh(self) -> TriangleMesh:
        mesh_config = self.config.mesh
        if mesh_config.file is not None:
            return read_gmsh(mesh_config.file)
        Lx, Ly = mesh_config.size
        nx, ny = mesh_config.divisions
        return create_rectangle_mesh(Lx, Ly, nx, ny, pattern=mesh_config.pattern)

    def _refined_mesh(self, mesh: TriangleMesh) -> TriangleMesh:
        mesh_config = self.config.mesh
        for _ in range(mesh_config.initial_refinement_level):
            mesh = refine_mesh(mesh)
        mesh = longest_edge_labeling(mesh)

        region = mesh_config.local_prerefinement_region
        if region is not None:
            for _ in range(mesh_config.n_adaptive_steps):
                mesh = refine_region(mesh, region, 2)
        return mesh

    def _initial_solution(self) -> np.ndarray:
        dh = self.dof_handler
        width = self.config.defect_width
        if width is None:
            width = 2 * self.minimum_mesh_size

        solution = dh.new_vector()
        solution[dh.phase_field_dofs] = defect_phase_field(
            dh.mesh.nodes, self.config.defects, width)
        return solution

    def add_post_step_hook(self, hook: Callable[[StepSnapshot], None]) -> None:
        """
        Register a post-solve run with the snapshot of every accepted step.

        Hooks run in registration order, before the step's output files are
        written. This is where a decoupled solver such as a crack width
        solve plugs in.
        """
        self._post_step_hooks.append(hook)

    def print_parameters(self) -> None:
        """Print a summary of the setup."""
        mat = self.material
        mesh = self.dof_handler.mesh
        print("Pressurized phase-field fracture")
        print(f"  Mesh: {mesh.n_nodes} nodes, {mesh.n_elements} cells, "
              f"min mesh size {self.minimum_mesh_size:.4e}")
        print(f"  Material: E = {mat.E:.4g}, nu = {mat.nu}, Gc = {mat.Gc:.4g}, "
              f"epsilon = {mat.epsilon:.4e}, kappa = {mat.kappa:.1e}, "
              f"biot = {mat.biot}, penalty = {mat.penalty}")
        print(f"  Pressure: mode = {self.pressure_coupler.mode}, "
              f"threshold = {self.pressure_coupler.threshold}")
        print("  " + self.boundary_conditions.summary().replace("\n", "\n  "))

    # ------------------------------------------------------------------
    # Controller hooks
    # ------------------------------------------------------------------

    def begin_step(self) -> None:
        self.history.advance()

    def restore_step(self) -> None:
        self.history.restore()

    def solve_step(self, time: float, time_steps) -> NewtonResult:
        """
        Update pressure and BCs, then run Newton on the current iterate.

        Args:
            time: end time of the step
            time_steps: (dt, dt_old)

        Returns:
            NewtonResult
        """
        pressure = self.pressure_coupler.update(self.history.solution, time)
        if self.verbose:
            print(f"  Pressure: {self.pressure_coupler.pressure_function(time):.6g}")

        bc_dofs = self.boundary_conditions.impose(self.history.solution, time)
        self.last_result = self.newton.solve(self.history, pressure, time_steps, bc_dofs)
        return self.last_result

    def needs_refinement(self) -> bool:
        if self.refiner is None:
            return False
        return self.refiner.prepare_refinement(self.history.solution)

    def refine(self) -> None:
        self.refiner.execute_refinement(self.history)

    def accept_step(self, step_number: int, time: float, time_steps,
                    result: NewtonResult) -> StepSnapshot:
        """
        Record an accepted step, run the post-step hooks, then write output
        and run postprocessing.

        Decoupled post-solves that consume the converged phase field, such
        as a crack width solve, are registered with add_post_step_hook and
        run here before any output of the step is written.

        Returns:
            StepSnapshot of the step
        """
        dh = self.dof_handler
        history = self.history
        stresses = self.assembler.compute_cell_stresses(
            history.solution, history.old_solution, history.old_old_solution, time_steps)

        snapshot = StepSnapshot(
            step_number=step_number,
            time=time,
            mesh=dh.mesh,
            solution=history.solution,
            active_set=result.active_set.mask(dh.n_dofs),
            pressure=self.pressure_coupler.pressure,
            cell_stresses=stresses,
        )
        self.snapshots.append(snapshot)

        for hook in self._post_step_hooks:
            hook(snapshot)
        if self.writer is not None:
            self.writer.write(snapshot)
        self.postprocessor.execute(step_number, time, time_steps, self.assembler, history)

        if self.verbose:
            phi = dh.phase_field_values(history.solution)
            print(f"  Accepted step {step_number}: {result.n_iterations} Newton iterations, "
                  f"min phi = {phi.min():.4f}, active set = {len(result.active_set)}")
        return snapshot

    # ------------------------------------------------------------------
    # Driver
    # ------------------------------------------------------------------

    def run(self, max_steps: Optional[int] = None) -> List[StepRecord]:
        """
        Advance the simulation to t_max.

        Args:
            max_steps: optional limit on the number of accepted steps

        Returns:
            records of all step attempts

        Raises:
            FatalNonConvergence: if a step fails at the minimum step size
        """
        output_dir = self.config.output.directory
        if output_dir is not None:
            os.makedirs(output_dir, exist_ok=True)
        return self.controller.run(self, max_steps=max_steps)

    @property
    def phase_field(self) -> np.ndarray:
        """Current nodal phase field."""
        return self.dof_handler.phase_field_values(self.history.solution)

    @property
    def displacement(self) -> np.ndarray:
        """Current nodal displacements, shape (n_nodes, 2)."""
        return self.dof_handler.displacement_values(self.history.solution)
