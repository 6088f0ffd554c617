import math

import numpy as np
import pytest

from shapescript.engine import compile_script
from shapescript.errors import CompileError
from shapescript.geometry.builders import (
    extrude_mesh,
    fill_mesh,
    hull_mesh,
    lathe_mesh,
    loft_mesh,
    is_convex_outline,
    is_convex_solid,
    minkowski_mesh,
    triangulate,
)
from shapescript.geometry.csg import boolean, combine, surfaces_touch
from shapescript.geometry.mesh import Mesh
from shapescript.geometry.primitives import cube_mesh, primitive_mesh, sphere_mesh, torus_mesh


def square(side=1.0, z=0.0):
    h = side / 2.0
    return np.array([[-h, -h, z], [h, -h, z], [h, h, z], [-h, h, z]])


def shifted(mesh, offset):
    m = np.eye(4)
    m[:3, 3] = offset
    return mesh.transformed(m)


@pytest.mark.parametrize('name', ['cube', 'sphere', 'cylinder', 'cone', 'torus'])
def test_primitives_are_closed_and_outward(name):
    mesh = primitive_mesh(name, {'size': (1.0, 1.0, 1.0)}, 16)
    assert mesh.is_closed_manifold()
    assert mesh.signed_volume() > 0


def test_primitive_extents_match_size():
    mesh = primitive_mesh('sphere', {'size': (2.0, 1.0, 4.0)}, 16)
    lo, hi = mesh.bounds()
    np.testing.assert_allclose(hi - lo, [2.0, 1.0, 4.0], atol=1e-2)


def test_cube_volume():
    assert cube_mesh((1.0, 2.0, 3.0)).signed_volume() == pytest.approx(6.0)


def test_cone_has_an_apex():
    mesh = primitive_mesh('cone', {'size': (1.0, 2.0, 1.0)}, 8)
    top = mesh.vertices[mesh.vertices[:, 1] == mesh.vertices[:, 1].max()]
    assert len(top) == 1


def test_torus_rejects_inner_radius_larger_than_outer():
    with pytest.raises(CompileError):
        torus_mesh(0.5, 1.0, 16)


def test_cavity_difference_is_one_closed_manifold():
    outer = cube_mesh((2.0, 2.0, 2.0))
    inner = sphere_mesh((1.0, 1.0, 1.0), 16)
    result = boolean('difference', outer, inner)
    assert result.is_closed_manifold()
    assert result.signed_volume() == pytest.approx(8.0 - inner.signed_volume())


def test_disjoint_shapes_do_not_touch():
    a = cube_mesh((1.0, 1.0, 1.0))
    b = shifted(cube_mesh((1.0, 1.0, 1.0)), (3.0, 0.0, 0.0))
    assert not surfaces_touch(a, b)
    assert boolean('intersection', a, b).is_empty
    assert boolean('union', a, b).signed_volume() == pytest.approx(2.0)


@pytest.mark.parametrize(
    'op, volume',
    [('union', 1.875), ('difference', 0.875), ('intersection', 0.125), ('xor', 1.75)],
)
def test_overlapping_cube_booleans(op, volume):
    a = cube_mesh((1.0, 1.0, 1.0))
    b = shifted(cube_mesh((1.0, 1.0, 1.0)), (0.5, 0.5, 0.5))
    assert surfaces_touch(a, b)
    assert boolean(op, a, b).signed_volume() == pytest.approx(volume, abs=1e-6)


@pytest.mark.parametrize('op', ['union', 'difference', 'intersection'])
def test_overlapping_booleans_are_watertight(op):
    a = cube_mesh((1.0, 1.0, 1.0))
    b = shifted(cube_mesh((1.0, 1.0, 1.0)), (0.5, 0.5, 0.5))
    assert boolean(op, a, b).is_closed_manifold()


def test_sphere_cut_through_cube_faces_is_watertight():
    result = compile_script('difference {\n    cube { size 1 }\n    sphere { size 1.2 }\n}')
    (mesh,) = result.meshes
    assert result.diagnostics == []
    assert mesh.mesh.is_closed_manifold()
    assert 0.0 < mesh.mesh.signed_volume() < 1.0


def test_combine_needs_two_operands():
    with pytest.raises(CompileError, match='union needs at least 2 shapes, got 1'):
        combine('union', [cube_mesh((1.0, 1.0, 1.0))])


def test_triangulate_concave_polygon():
    l_shape = np.array([[0, 0], [2, 0], [2, 1], [1, 1], [1, 2], [0, 2]], dtype=float)
    tris = triangulate(l_shape)
    assert len(tris) == 4
    area = 0.0
    for a, b, c in tris:
        pa, pb, pc = l_shape[a], l_shape[b], l_shape[c]
        cross = (pb[0] - pa[0]) * (pc[1] - pa[1]) - (pb[1] - pa[1]) * (pc[0] - pa[0])
        assert cross > 0
        area += cross / 2.0
    assert area == pytest.approx(3.0)


def test_fill_faces_up():
    mesh = fill_mesh([square()])
    assert len(mesh.faces) == 2
    np.testing.assert_allclose(mesh.face_normals(), [[0, 0, 1], [0, 0, 1]])


def test_extrude_square_is_a_closed_box():
    mesh = extrude_mesh(square()[:, :2], depth=2.0)
    assert mesh.is_closed_manifold()
    assert mesh.signed_volume() == pytest.approx(2.0)
    lo, hi = mesh.bounds()
    np.testing.assert_allclose([lo[2], hi[2]], [-1.0, 1.0])


def test_extrude_twist_keeps_volume():
    mesh = extrude_mesh(square()[:, :2], depth=1.0, twist=0.25, detail=8)
    assert mesh.is_closed_manifold()
    assert mesh.signed_volume() == pytest.approx(1.0, rel=0.05)


def test_extrude_along_spine():
    spine = np.array([[0.0, 0.0, 0.0], [0.0, 1.0, 0.0], [0.0, 2.0, 0.0]])
    mesh = extrude_mesh(square(0.5)[:, :2], spine=spine)
    assert mesh.is_closed_manifold()
    assert mesh.signed_volume() == pytest.approx(0.5)


def test_lathe_profile_touching_axis_is_closed():
    profile = np.array([[0.0, 0.5, 0.0], [0.5, 0.5, 0.0], [0.5, -0.5, 0.0], [0.0, -0.5, 0.0]])
    mesh = lathe_mesh(profile, 16)
    assert mesh.is_closed_manifold()
    expected = 8 * 0.25 * math.sin(2 * math.pi / 16)
    assert mesh.signed_volume() == pytest.approx(expected)


def test_loft_between_two_squares():
    mesh = loft_mesh([square(1.0, 0.0), square(1.0, 1.0)])
    assert mesh.is_closed_manifold()
    assert mesh.signed_volume() == pytest.approx(1.0)


def test_loft_needs_two_sections():
    with pytest.raises(CompileError):
        loft_mesh([square()])


def test_hull_of_cube_corners():
    corners = np.array([[x, y, z] for x in (0, 1) for y in (0, 1) for z in (0, 1)], dtype=float)
    interior = np.array([[0.5, 0.5, 0.5]])
    mesh = hull_mesh(np.vstack([corners, interior]))
    assert mesh.is_closed_manifold()
    assert mesh.signed_volume() == pytest.approx(1.0)
    assert len(mesh.vertices) == 8


def test_hull_of_flat_points_fails():
    with pytest.raises(CompileError, match='hull'):
        hull_mesh(square())


def test_minkowski_of_two_cubes():
    a = cube_mesh((1.0, 1.0, 1.0)).vertices
    b = cube_mesh((2.0, 2.0, 2.0)).vertices
    mesh = minkowski_mesh(a, b)
    assert mesh.signed_volume() == pytest.approx(27.0)


def test_convexity_checks():
    assert is_convex_solid(cube_mesh((1.0, 2.0, 3.0)))
    assert is_convex_solid(sphere_mesh((1.0, 1.0, 1.0), 16))
    assert not is_convex_solid(torus_mesh(1.0, 0.5, 16))
    assert is_convex_outline(square())
    l_shape = np.array([[0, 0, 0], [2, 0, 0], [2, 1, 0], [1, 1, 0], [1, 2, 0], [0, 2, 0]], dtype=float)
    assert not is_convex_outline(l_shape)


def test_minkowski_rejects_concave_operands():
    result = compile_script('minkowski {\n    torus\n    cube { size 0.1 }\n}')
    assert [m.kind for m in result.meshes] == ['error']
    (diagnostic,) = result.diagnostics
    assert diagnostic['message'] == 'minkowski only supports convex shapes'


def test_transformed_with_mirror_keeps_outward_faces():
    mirrored = cube_mesh((1.0, 1.0, 1.0)).transformed(np.diag([-1.0, 1.0, 1.0, 1.0]))
    assert mirrored.signed_volume() == pytest.approx(1.0)


def test_contains():
    mesh = cube_mesh((1.0, 1.0, 1.0))
    inside = mesh.contains(np.array([[0.0, 0.0, 0.0], [2.0, 0.0, 0.0]]))
    assert inside.tolist() == [True, False]


def test_welded_merges_coincident_vertices():
    mesh = Mesh.merge([fill_mesh([square()]), fill_mesh([square()])])
    assert len(mesh.vertices) == 8
    assert len(mesh.welded().vertices) == 4


# -- compiled scenes -------------------------------------------------------


def test_scene_with_two_primitives():
    result = compile_script('cube { size 1 }\nsphere { position 2 0 0 size 1 }')
    assert [m.kind for m in result.meshes] == ['cube', 'sphere']
    assert result.meshes[1].position == (2.0, 0.0, 0.0)
    assert result.diagnostics == []


def test_compiled_cavity_is_closed():
    result = compile_script('difference {\n    cube { size 2 }\n    sphere\n}')
    (mesh,) = result.meshes
    assert mesh.kind == 'difference'
    assert mesh.mesh.is_closed_manifold()


def test_csg_operands_are_placed_in_the_node_frame():
    result = compile_script(
        'union {\n    position 10 0 0\n    cube\n    cube { position 3 0 0 }\n}'
    )
    (mesh,) = result.meshes
    world = mesh.world_mesh()
    lo, hi = world.bounds()
    np.testing.assert_allclose(lo, [9.5, -0.5, -0.5])
    np.testing.assert_allclose(hi, [13.5, 0.5, 0.5])


def test_csg_takes_first_operand_material():
    result = compile_script('union {\n    cube { color 1 0 0 }\n    sphere { color 0 1 0 }\n}')
    assert result.meshes[0].material.color == (1.0, 0.0, 0.0, 1.0)


def test_broken_subtree_fails_soft():
    result = compile_script('union {\n    cube\n}\nsphere { position 0 3 0 }')
    assert [m.kind for m in result.meshes] == ['error', 'sphere']
    (diagnostic,) = result.diagnostics
    assert diagnostic['stage'] == 'compile'
    assert diagnostic['kind'] == 'CompileError'
    assert diagnostic['line'] == 1
    assert 'union needs at least 2 shapes' in diagnostic['message']
    marker = result.meshes[0]
    assert marker.material.color == (1.0, 0.0, 0.0, 1.0)
    assert marker.error == diagnostic


def test_builders_compile_from_scripts():
    result = compile_script(
        'extrude { square }\n'
        'lathe { path { point 0 0.5 point 0.5 0.5 point 0.5 -0.5 point 0 -0.5 } }\n'
        'loft {\n    square\n    circle { position 0 0 1 }\n}\n'
        'fill { polygon { sides 6 } }\n'
        'hull {\n    cube\n    sphere { position 2 0 0 }\n}\n'
        'minkowski {\n    cube\n    sphere { size 0.5 }\n}'
    )
    assert [m.kind for m in result.meshes] == ['extrude', 'lathe', 'loft', 'fill', 'hull', 'minkowski']
    assert result.diagnostics == []
    extrude = result.meshes[0].mesh
    assert extrude.is_closed_manifold()
    assert extrude.signed_volume() == pytest.approx(1.0)


def test_stencil_colors_faces_inside_the_mask():
    result = compile_script(
        'stencil {\n    cube { color 1 1 1 }\n    sphere { position 0.5 0 0 color 1 0 0 }\n}'
    )
    (mesh,) = result.meshes
    assert mesh.kind == 'stencil'
    colors = mesh.face_colors
    assert len(colors) == len(mesh.faces)
    assert {tuple(c) for c in colors.tolist()} == {(1.0, 1.0, 1.0, 1.0), (1.0, 0.0, 0.0, 1.0)}


def test_bare_path_compiles_to_a_line():
    result = compile_script('path {\n    point 0 0\n    point 1 0\n    point 1 1\n}')
    (mesh,) = result.meshes
    assert mesh.kind == 'line'
    assert len(mesh.faces) == 0
    np.testing.assert_allclose(mesh.vertices, [[0, 0, 0], [1, 0, 0], [1, 1, 0]])
