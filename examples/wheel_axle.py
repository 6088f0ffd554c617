"""Example pipeline: define a custom shape, evaluate it and compile meshes."""

from shapescript import evaluate, parse_program, print_program
from shapescript.geometry import compile_scene

TEXT = """
// Two wheels on an axle; the wheel size is an overridable option
define wheel {
    option radius 1
    color 0.2 0.2 0.2
    cylinder { size radius * 2 0.3 }
}

group {
    rotate 0 0 0.25
    cylinder { size 0.2 3 0.2 color 0.7 0.7 0.7 }
    wheel { position 0 1.5 0 }
    wheel { position 0 -1.5 0 radius 0.8 }
}
"""


def main() -> None:
    program = parse_program(TEXT)
    print(f"Program:\n{print_program(program)}")

    scene = evaluate(program)
    print(f"Shapes: {len(scene.shapes)}")

    result = compile_scene(scene)
    print(f"Meshes ({len(result.meshes)}):")
    for i, descriptor in enumerate(result.meshes):
        x, y, z = descriptor.position
        print(f"  [{i}] {descriptor.kind} at ({x:.3f}, {y:.3f}, {z:.3f}) color={descriptor.material.color}")
    for diagnostic in result.diagnostics:
        print("Diagnostic:", diagnostic)


if __name__ == "__main__":
    main()
