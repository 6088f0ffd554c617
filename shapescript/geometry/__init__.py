from .mesh import Mesh, MeshDescriptor
from .primitives import primitive_mesh
from .csg import boolean, combine
from .builders import extrude_mesh, fill_mesh, hull_mesh, lathe_mesh, loft_mesh, minkowski_mesh
from .compiler import CompileResult, SceneCompiler, compile_scene

__all__ = [
    'Mesh',
    'MeshDescriptor',
    'primitive_mesh',
    'boolean',
    'combine',
    'extrude_mesh',
    'fill_mesh',
    'hull_mesh',
    'lathe_mesh',
    'loft_mesh',
    'minkowski_mesh',
    'CompileResult',
    'SceneCompiler',
    'compile_scene',
]
