"""Configuration and I/O module for the dipole magnet pair simulator.

This module provides:
- YAML configuration loading and validation
- Example config generation
- CSV output for interaction histories
- JSON output for diagnostics

A configuration describes the host bodies, the magnet pair attached to two
of them (moments, offsets), publishing options and integration numerics.
"""

from typing import Any, Dict, List, Optional, Tuple
import json
from pathlib import Path
import numpy as np
import yaml

from magpair.bodies import RigidBody
from magpair.errors import ConfigurationError, DomainError
from magpair.geometry import Pose, quat_from_rpy
from magpair.magnets import Magnet, MagnetPair
from magpair.pair import COINCIDENT_POLICIES, evaluate_pair
from magpair.publisher import PublishOptions

KNOWN_PLOTS = ('interaction', 'separation')


def _vec3(raw, label: str, default=None) -> np.ndarray:
    if raw is None:
        if default is None:
            raise KeyError(label)
        raw = default
    vec = np.array(raw, dtype=float)
    if vec.shape != (3,):
        raise ValueError(f"'{label}' must be a list of 3 numbers, got {raw!r}")
    return vec


def _parse_body(body_cfg: Dict[str, Any]) -> RigidBody:
    rpy = _vec3(body_cfg.get('orientation_rpy'), 'orientation_rpy', default=[0.0, 0.0, 0.0])
    return RigidBody(
        name=str(body_cfg['name']),
        mass=float(body_cfg.get('mass', 1.0)),
        inertia=_vec3(body_cfg.get('inertia'), 'inertia', default=[1.0, 1.0, 1.0]),
        position=_vec3(body_cfg.get('position'), 'position', default=[0.0, 0.0, 0.0]),
        orientation=quat_from_rpy(*rpy),
        velocity=_vec3(body_cfg.get('velocity'), 'velocity', default=[0.0, 0.0, 0.0]),
        angular_velocity=_vec3(body_cfg.get('angular_velocity'), 'angular_velocity',
                               default=[0.0, 0.0, 0.0]),
        fixed=bool(body_cfg.get('fixed', False)),
    )


def _parse_magnet(pair_cfg: Dict[str, Any], side: str) -> Magnet:
    moment = _vec3(pair_cfg.get(f'{side}_dipole_moment'), f'{side}_dipole_moment',
                   default=[0.0, 0.0, 0.0])
    xyz = _vec3(pair_cfg.get(f'{side}_xyz_offset'), f'{side}_xyz_offset', default=[0.0, 0.0, 0.0])
    rpy = _vec3(pair_cfg.get(f'{side}_rpy_offset'), f'{side}_rpy_offset', default=[0.0, 0.0, 0.0])
    return Magnet(moment=moment, offset=Pose(position=xyz, orientation=quat_from_rpy(*rpy)))


def parse_magnet_pair(pair_cfg: Dict[str, Any]) -> Tuple[MagnetPair, str]:
    """Build a MagnetPair and coincident policy from a 'magnet_pair' section.

    Raises
    ------
    ConfigurationError
        If a body name is missing, or the policy is unknown.
    """
    for key in ('parent_body_name', 'child_body_name'):
        if not pair_cfg.get(key):
            raise ConfigurationError(f"magnet_pair is missing <{key}>, cannot proceed")

    on_coincident = str(pair_cfg.get('on_coincident', 'warn'))
    if on_coincident not in COINCIDENT_POLICIES:
        raise ConfigurationError(
            f"magnet_pair.on_coincident must be one of {COINCIDENT_POLICIES}, got '{on_coincident}'"
        )

    pair = MagnetPair(
        parent_body=str(pair_cfg['parent_body_name']),
        child_body=str(pair_cfg['child_body_name']),
        parent=_parse_magnet(pair_cfg, 'parent'),
        child=_parse_magnet(pair_cfg, 'child'),
    )
    return pair, on_coincident


def parse_publish(publish_cfg: Optional[Dict[str, Any]], parent_body: str) -> PublishOptions:
    """Build PublishOptions, printing the defaults that get filled in."""
    publish_cfg = publish_cfg or {}
    should_publish = bool(publish_cfg.get('should_publish', False))

    if 'update_rate' not in publish_cfg:
        if should_publish:
            print("publish.update_rate missing, defaults to 0.0 (as fast as possible)")
        update_rate = 0.0
    else:
        update_rate = float(publish_cfg['update_rate'])

    topic_ns = publish_cfg.get('topic_ns')
    if should_publish and not topic_ns:
        print(f"publish.topic_ns missing, will publish on namespace '{parent_body}'")

    return PublishOptions(
        should_publish=should_publish,
        update_rate=update_rate,
        topic_ns=str(topic_ns) if topic_ns else None,
    )


def load_config(yaml_path: str) -> Dict[str, Any]:
    """Load and parse YAML configuration file.

    Parameters
    ----------
    yaml_path : str
        Path to YAML configuration file.

    Returns
    -------
    dict
        Configuration dictionary with keys:
        - 'bodies': list of RigidBody instances
        - 'pair': MagnetPair instance
        - 'on_coincident': 'warn' or 'raise'
        - 'publish': PublishOptions instance
        - 'numerics': dict (dt, steps, save_every, gravity)
        - 'outputs': dict (write_csv, plots)

    Raises
    ------
    FileNotFoundError
        If yaml_path does not exist.
    yaml.YAMLError
        If YAML parsing fails.
    KeyError
        If a required section or field is missing.
    ValueError
        If a value is invalid (bad vector length, non-positive mass, ...).
    ConfigurationError
        If the magnet pair names are missing or refer to unknown bodies.

    Examples
    --------
    >>> config = load_config("capsule.yaml")
    >>> print(config['pair'])
    MagnetPair 'capsule' <-> 'base'
    ...
    """
    yaml_path = Path(yaml_path)
    if not yaml_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {yaml_path}")

    with open(yaml_path, 'r') as f:
        raw_config = yaml.safe_load(f)

    if raw_config is None:
        raise ValueError(f"Empty or invalid YAML file: {yaml_path}")

    # Parse bodies
    if 'bodies' not in raw_config:
        raise KeyError("Configuration missing required section 'bodies'")

    bodies_cfg = raw_config['bodies']
    if not isinstance(bodies_cfg, list) or len(bodies_cfg) < 2:
        raise ValueError("Configuration 'bodies' must be a list of at least two bodies")

    bodies = []
    for i, body_cfg in enumerate(bodies_cfg):
        try:
            bodies.append(_parse_body(body_cfg))
        except KeyError as e:
            raise KeyError(f"Body {i} missing required field {e}")
        except (ValueError, TypeError) as e:
            raise ValueError(f"Body {i} ('{body_cfg.get('name', 'unnamed')}'): {e}")

    # Parse magnet pair
    if 'magnet_pair' not in raw_config:
        raise KeyError("Configuration missing required section 'magnet_pair'")

    try:
        pair, on_coincident = parse_magnet_pair(raw_config['magnet_pair'])
    except ConfigurationError:
        raise
    except (ValueError, TypeError) as e:
        raise ValueError(f"magnet_pair: {e}")

    names = {body.name for body in bodies}
    for name in (pair.parent_body, pair.child_body):
        if name not in names:
            raise ConfigurationError(f"magnet_pair refers to body '{name}', which does not exist")

    publish = parse_publish(raw_config.get('publish'), pair.parent_body)

    # Parse numerics
    if 'numerics' not in raw_config:
        raise KeyError("Configuration missing required section 'numerics'")

    numerics_cfg = raw_config['numerics']
    numerics = {
        'dt': float(numerics_cfg['dt']),
        'steps': int(numerics_cfg['steps']),
        'save_every': int(numerics_cfg.get('save_every', 1)),
        'gravity': _vec3(numerics_cfg.get('gravity'), 'gravity', default=[0.0, 0.0, 0.0]),
    }

    # Parse output options
    outputs_cfg = raw_config.get('outputs', {}) or {}
    outputs = {
        'write_csv': bool(outputs_cfg.get('write_csv', True)),
        'plots': list(outputs_cfg.get('plots', [])),
    }

    return {
        'bodies': bodies,
        'pair': pair,
        'on_coincident': on_coincident,
        'publish': publish,
        'numerics': numerics,
        'outputs': outputs,
    }


def validate_config(config: Dict[str, Any]) -> Tuple[bool, List[str]]:
    """Validate configuration for physical consistency and numerical stability.

    Checks performed
    ----------------
    1. Positive numerics: dt > 0, steps > 0, save_every > 0
    2. Pair bodies exist and are not both fixed
    3. Initial dipole separation is non-zero (DomainError otherwise)
    4. Non-zero moments on both magnets
    5. Timestep small compared to the interaction time scale
       τ ~ sqrt(m d / |F|) of each free pair body
    6. Publish rate not above the tick rate
    7. Known plot names

    Returns
    -------
    is_valid : bool
        True if the configuration can run (may still have warnings).
    warnings_list : list of str
        Messages about errors and potential issues.
    """
    warnings_list = []
    is_valid = True

    try:
        bodies = config['bodies']
        pair = config['pair']
        publish = config['publish']
        numerics = config['numerics']
        outputs = config['outputs']
    except KeyError as e:
        return False, [f"Missing required config section: {e}"]

    if numerics['dt'] <= 0:
        is_valid = False
        warnings_list.append(f"Timestep dt must be positive, got {numerics['dt']}")

    if numerics['steps'] <= 0:
        is_valid = False
        warnings_list.append(f"Number of steps must be positive, got {numerics['steps']}")

    if numerics['save_every'] <= 0:
        is_valid = False
        warnings_list.append(f"save_every must be positive, got {numerics['save_every']}")

    by_name = {body.name: body for body in bodies}
    if len(by_name) != len(bodies):
        is_valid = False
        warnings_list.append("Body names must be unique")

    parent = by_name.get(pair.parent_body)
    child = by_name.get(pair.child_body)
    if parent is None or child is None:
        is_valid = False
        warnings_list.append(
            f"Magnet pair bodies '{pair.parent_body}'/'{pair.child_body}' not all present"
        )
        return is_valid, warnings_list

    if parent.fixed and child.fixed:
        warnings_list.append("Both pair bodies are fixed; the interaction moves nothing")

    for label, mag in (("parent", pair.parent), ("child", pair.child)):
        if mag.strength == 0.0:
            warnings_list.append(f"The {label} dipole moment is zero; no interaction will occur")

    try:
        result = evaluate_pair(parent.world_pose, child.world_pose, pair)
    except DomainError as e:
        is_valid = False
        warnings_list.append(f"Initial dipole positions coincide: {e}")
        return is_valid, warnings_list

    f_mag = float(np.linalg.norm(result.force))
    d = result.separation
    if f_mag > 0 and numerics['dt'] > 0:
        for body in (parent, child):
            if body.fixed:
                continue
            tau = np.sqrt(body.mass * d / f_mag)
            if numerics['dt'] > 0.01 * tau:
                warnings_list.append(
                    f"Timestep dt = {numerics['dt']:.3e} is large compared to the "
                    f"interaction time scale of '{body.name}' sqrt(m d / F) = {tau:.3e}. "
                    f"Consider dt < {0.01 * tau:.3e}."
                )

    if publish.should_publish and publish.update_rate > 0 and numerics['dt'] > 0:
        tick_rate = 1.0 / numerics['dt']
        if publish.update_rate > tick_rate:
            warnings_list.append(
                f"update_rate = {publish.update_rate:.3g} Hz exceeds the tick rate "
                f"{tick_rate:.3g} Hz; every tick will publish"
            )

    for plot in outputs['plots']:
        if plot not in KNOWN_PLOTS:
            warnings_list.append(f"Unknown plot '{plot}' (available: {', '.join(KNOWN_PLOTS)})")

    return is_valid, warnings_list


def create_example_config(output_path: str) -> None:
    """Generate example YAML configuration file.

    The example is a magnetic capsule (parent, free) hovering near a fixed
    base magnet (child), both moments roughly along z so the capsule is
    attracted downward while a tilt produces a restoring torque.
    """
    yaml_content = """# Dipole magnet pair configuration
# Capsule above a fixed base magnet
#
# The parent body is the one whose magnetometer reading is reported; the
# computed force/torque acts on it and the reaction on the child body.

# ============================================================================
# Bodies: rigid bodies of the host world
# ============================================================================
bodies:
  - name: capsule
    # Mass [kg] and principal moments of inertia [kg m^2]
    mass: 0.005
    inertia: [2.0e-7, 2.0e-7, 1.0e-7]
    # Centre of gravity [m] and orientation (roll, pitch, yaw) [rad]
    position: [0.01, 0.0, 0.1]
    orientation_rpy: [0.1, 0.0, 0.0]
    velocity: [0.0, 0.0, 0.0]
    angular_velocity: [0.0, 0.0, 0.0]

  - name: base
    mass: 1.0
    inertia: [1.0e-3, 1.0e-3, 1.0e-3]
    position: [0.0, 0.0, 0.0]
    # Fixed bodies are never moved by the integrator
    fixed: true

# ============================================================================
# Magnet pair: one point dipole on each of two bodies
# ============================================================================
magnet_pair:
  parent_body_name: capsule
  child_body_name: base

  # Dipole moments in each magnet's local frame [A m^2], default [0, 0, 0]
  parent_dipole_moment: [0.0, 0.0, 0.1]
  child_dipole_moment: [0.0, 0.0, 1.0]

  # Magnet frame -> body frame offsets, default identity
  parent_xyz_offset: [0.0, 0.0, 0.0]
  parent_rpy_offset: [0.0, 0.0, 0.0]
  child_xyz_offset: [0.0, 0.0, 0.0]
  child_rpy_offset: [0.0, 0.0, 0.0]

  # What to do if the dipoles coincide: warn (skip the tick) or raise
  on_coincident: warn

# ============================================================================
# Publishing: wrench and magnetometer topics
# ============================================================================
publish:
  should_publish: true
  # Maximum rate [Hz], 0 = every tick
  update_rate: 100.0
  # Topics are <topic_ns>/wrench and <topic_ns>/mfs
  topic_ns: capsule

# ============================================================================
# Numerics
# ============================================================================
numerics:
  # Timestep [s]
  dt: 1.0e-3
  steps: 500
  # Record every N ticks
  save_every: 1
  # Uniform gravity [m/s^2]
  gravity: [0.0, 0.0, 0.0]

# ============================================================================
# Outputs
# ============================================================================
outputs:
  write_csv: true
  # Available plots: interaction, separation
  plots:
    - interaction
    - separation
"""

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    with open(output_path, 'w') as f:
        f.write(yaml_content)

    print(f"Example configuration written to: {output_path}")


def save_history_csv(filepath: str, history: Dict[str, np.ndarray]) -> None:
    """Save an interaction history to CSV.

    Columns: time, valid, fx, fy, fz, tx, ty, tz, bx, by, bz, separation,
    parent_x, parent_y, parent_z, child_x, child_y, child_z.
    One row per saved tick. Field columns are in the parent body frame.
    """
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)

    with open(filepath, 'w') as f:
        f.write("time,valid,fx,fy,fz,tx,ty,tz,bx,by,bz,separation,"
                "parent_x,parent_y,parent_z,child_x,child_y,child_z\n")

        for i, t in enumerate(history['t']):
            F = history['force'][i]
            T = history['torque'][i]
            B = history['field'][i]
            xp = history['x_parent'][i]
            xc = history['x_child'][i]
            f.write(
                f"{t:.15e},{int(bool(history['valid'][i]))},"
                f"{F[0]:.15e},{F[1]:.15e},{F[2]:.15e},"
                f"{T[0]:.15e},{T[1]:.15e},{T[2]:.15e},"
                f"{B[0]:.15e},{B[1]:.15e},{B[2]:.15e},"
                f"{history['separation'][i]:.15e},"
                f"{xp[0]:.15e},{xp[1]:.15e},{xp[2]:.15e},"
                f"{xc[0]:.15e},{xc[1]:.15e},{xc[2]:.15e}\n"
            )

    print(f"Saved {len(history['t'])} ticks to {filepath}")


def to_json_serializable(obj):
    """Recursively convert numpy arrays and scalars to plain Python types."""
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    elif isinstance(obj, dict):
        return {key: to_json_serializable(val) for key, val in obj.items()}
    elif isinstance(obj, (list, tuple)):
        return [to_json_serializable(item) for item in obj]
    elif isinstance(obj, np.bool_):
        return bool(obj)
    elif isinstance(obj, (np.integer, np.floating)):
        return obj.item()
    else:
        return obj


def save_diagnostics_json(filepath: str, diagnostics: Dict[str, Any]) -> None:
    """Save diagnostics data to JSON file.

    Arrays and numpy scalars are converted to plain lists and numbers.
    """
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)

    with open(filepath, 'w') as f:
        json.dump(to_json_serializable(diagnostics), f, indent=2)

    print(f"Saved diagnostics to {filepath} ({len(diagnostics)} top-level keys)")
