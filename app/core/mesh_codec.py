"""
Binary mesh container (glTF 2.0 binary, GLB).

Layout, little-endian:

    header   magic b"glTF" | version u32 | total length u32
    chunk 0  length u32 | type 0x4E4F534A ("JSON") | UTF-8 JSON, space padded
    chunk 1  length u32 | type 0x004E4942 ("BIN\\0") | vertex/index payload

Writing is delegated to trimesh's exporter.  The reader here only checks
the framing and summarises the JSON accessors; it never decodes the
binary payload.
"""

from __future__ import annotations

import json
import logging
import struct

import numpy as np
import trimesh

from app.models.schemas import MeshSummary

logger = logging.getLogger(__name__)

GLB_MAGIC = b"glTF"
GLB_VERSION = 2
HEADER_SIZE = 12
CHUNK_HEADER_SIZE = 8
CHUNK_JSON = 0x4E4F534A
CHUNK_BIN = 0x004E4942


def serialize(mesh: trimesh.Trimesh) -> bytes:
    data = mesh.export(file_type="glb", include_normals=True)
    logger.debug("Serialized mesh: %d bytes", len(data))
    return data


def _chunk(buffer: bytes, offset: int, end: int) -> tuple[int, int, int]:
    """(type, payload start, payload end) of the chunk at ``offset``."""
    if offset + CHUNK_HEADER_SIZE > end:
        raise ValueError(f"Truncated chunk header at offset {offset}")
    length, kind = struct.unpack_from("<II", buffer, offset)
    start = offset + CHUNK_HEADER_SIZE
    if start + length > end:
        raise ValueError(
            f"Chunk at offset {offset} declares {length} bytes, only {end - start} available"
        )
    return kind, start, start + length


def parse_mesh(buffer: bytes) -> MeshSummary:
    """
    Read back a serialized mesh.

    Raises
    ------
    ValueError
        Buffer shorter than the header, wrong magic, unsupported version,
        or chunk lengths inconsistent with the buffer.
    """
    if len(buffer) < HEADER_SIZE:
        raise ValueError(f"Buffer of {len(buffer)} bytes is shorter than the {HEADER_SIZE}-byte header")

    magic, version, total = struct.unpack_from("<4sII", buffer, 0)
    if magic != GLB_MAGIC:
        raise ValueError(f"Bad magic {magic!r}, expected {GLB_MAGIC!r}")
    if version != GLB_VERSION:
        raise ValueError(f"Unsupported container version {version}")
    if total > len(buffer):
        raise ValueError(f"Header declares {total} bytes, buffer has {len(buffer)}")

    kind, start, stop = _chunk(buffer, HEADER_SIZE, total)
    if kind != CHUNK_JSON:
        raise ValueError(f"First chunk type 0x{kind:08X} is not JSON")
    try:
        doc = json.loads(buffer[start:stop].decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ValueError(f"Metadata chunk is not valid JSON: {exc}") from exc

    if stop < total:
        kind, _, _ = _chunk(buffer, stop, total)
        if kind != CHUNK_BIN:
            raise ValueError(f"Second chunk type 0x{kind:08X} is not BIN")

    accessors = doc.get("accessors", [])
    n_vertices = n_faces = 0
    has_normals = False
    lows, highs = [], []

    for mesh in doc.get("meshes", []):
        for prim in mesh.get("primitives", []):
            attrs = prim.get("attributes", {})
            if "POSITION" in attrs:
                acc = accessors[attrs["POSITION"]]
                n_vertices += int(acc["count"])
                if "min" in acc and "max" in acc:
                    lows.append(acc["min"])
                    highs.append(acc["max"])
            if "NORMAL" in attrs:
                has_normals = True
            if "indices" in prim:
                n_faces += int(accessors[prim["indices"]]["count"]) // 3

    return MeshSummary(
        version=version,
        byte_length=total,
        vertex_count=n_vertices,
        face_count=n_faces,
        has_normals=has_normals,
        bounds_min=np.min(lows, axis=0).tolist() if lows else None,
        bounds_max=np.max(highs, axis=0).tolist() if highs else None,
    )
