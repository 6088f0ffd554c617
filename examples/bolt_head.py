"""Example pipeline: CSG and builders through the one-call engine API."""

import json

from shapescript import run_script

TEXT = """
define facets 6

difference {
    extrude {
        size 1 1 0.4
        polygon { sides facets }
    }
    cylinder { size 0.4 1 orientation 0 0 0.25 }
}

lathe {
    position 0 0 -1
    path {
        point 0 0.8
        point 0.2 0.8
        point 0.2 -0.8
        point 0 -0.8
    }
}
"""


def main() -> None:
    envelope = run_script(TEXT, {"defaultDetailLevel": 24})
    if not envelope["ok"]:
        print("Failed:", json.dumps(envelope["error"], indent=2))
        return
    for mesh in envelope["meshes"]:
        print(f"{mesh['kind']}: {len(mesh['vertices'])} vertices, {len(mesh['faces'])} faces")
    print("Diagnostics:", envelope["diagnostics"] or "none")


if __name__ == "__main__":
    main()
