#!/usr/bin/env python3

import json
import sys
from pathlib import Path

from app.core.pipeline import parse_scan_request, run_scan


def scan(path: str, mesh_out: str | None = None) -> dict:
    request = parse_scan_request(json.loads(Path(path).read_text()))
    result = run_scan(request)

    out = result.model_dump(mode="json", exclude={"mesh_glb"})
    out["mesh_bytes"] = len(result.mesh_glb or b"")
    if mesh_out and result.mesh_glb:
        Path(mesh_out).write_bytes(result.mesh_glb)
        out["mesh_path"] = mesh_out
    return out


def main():
    if len(sys.argv) not in (2, 3):
        print(f"Usage: python {sys.argv[0]} <request.json> [mesh_out.glb]", file=sys.stderr)
        sys.exit(1)

    try:
        result = scan(sys.argv[1], sys.argv[2] if len(sys.argv) == 3 else None)
        print(json.dumps(result, indent=2))
    except Exception as exc:
        print(json.dumps({"error": str(exc)}), file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
