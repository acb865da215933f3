# walkscene

Building blocks for small 3D games, written on top of numpy and Pillow.

## Modules

- **`walkscene.chunk`** – the chunk format used by scene and walk mesh files:
  a four byte magic tag, a little-endian 32-bit byte count, then fixed-size
  records. `read_chunk` / `write_chunk` take a `struct` layout (little-endian
  and unpadded unless the layout says otherwise); `read_bytes_chunk` /
  `write_bytes_chunk` handle raw bytes. Malformed chunks raise `ChunkError`.
- **`walkscene.datapath`** – `data_path(suffix)` joins `suffix` onto the
  directory of the running program.
- **`walkscene.quat`** – quaternions as numpy arrays ordered `(w, x, y, z)`:
  `quat_identity`, `quat_multiply`, `quat_inverse`, `quat_to_mat3`,
  `quat_rotate`, `angle_axis` and `rotation_between`.
- **`walkscene.scene`** – a `Scene` of `Transform`s (position, rotation,
  scale, optional parent) with attached `Drawable`s, `Camera`s and `Light`s.
  Transforms build 3x4 matrices with `make_local_to_parent`,
  `make_parent_to_local`, `make_local_to_world` and `make_world_to_local`;
  `Camera.make_projection` gives an infinite perspective matrix.
  `Scene.load(filename, on_drawable)` reads a scene file (chunks `str0`,
  `xfh0`, `msh0`, `cam0`, `lmp0`), calling `on_drawable(scene, transform,
  mesh_name)` for every mesh entry; non-perspective cameras and unknown lamp
  types are skipped. Subclasses can override `load_extra` to read further
  chunks. `Scene.set(other)` replaces the contents with a copy of `other` and
  returns the mapping from old to new transforms; `Scene.copy()` returns an
  independent copy. Bad files raise `SceneError`.
- **`walkscene.walkmesh`** – `WalkMesh` holds vertices, normals and
  counter-clockwise triangles; a `WalkPoint` is a triangle plus barycentric
  weights. `nearest_walk_point` finds the closest point on the mesh,
  `walk_in_triangle(start, step)` returns `(end, time)` stopping at the first
  edge reached, and `cross_edge(start)` returns an `EdgeCrossing(end,
  rotation, crossed)` onto the neighbouring triangle. `to_world_point`,
  `to_world_smooth_normal` and `to_world_triangle_normal` read results back.
  `WalkMeshes(filename)` loads a file of named meshes; `lookup(name)` fetches
  one (raising `KeyError` if absent).
- **`walkscene.sound`** – mono 48 kHz `Sample`s (`Sample.from_file` reads
  `.wav` files through `load_wav`, which converts to mono float32 at 48 kHz).
  A `Mixer` plays samples in 2D (`play`, `loop`, with a pan from -1 to 1) or
  in 3D (`play_3d`, `loop_3d`, panned and attenuated relative to
  `mixer.listener`). Volume, pan, position and listener changes are smoothed
  by `Ramp`s. `Mixer.mix()` returns the next 1024 stereo frames as a
  `(1024, 2)` float32 array; `stop_all_samples` and `set_volume` act on
  everything playing.
- **`walkscene.image`** – `load_png(filename, origin)` returns
  `((width, height), pixels)` with `pixels` a `(height, width, 4)` uint8 RGBA
  array; `save_png(filename, size, data, origin)` writes one. `Origin`
  chooses whether the first row is the bottom (`LOWER_LEFT`) or top
  (`UPPER_LEFT`) of the image.
- **`walkscene.orbit`** – `OrbitCamera`, a z-up trackball controller:
  `press`, `drag(xrel, yrel, window_size, shift)` and `wheel(y)` adjust it;
  `rotation`, `position` and `update_camera(camera, drawable_size)` place a
  scene `Camera`.

## Installation

```
pip install walkscene
```

## Example

```python
from walkscene.walkmesh import WalkMesh

mesh = WalkMesh(
    vertices=[(0, 0, 0), (1, 0, 0), (0, 1, 0)],
    normals=[(0, 0, 1)] * 3,
    triangles=[(0, 1, 2)],
)
start = mesh.nearest_walk_point((0.2, 0.2, 5.0))
end, time = mesh.walk_in_triangle(start, (0.1, 0.0, 0.0))
print(mesh.to_world_point(end), time)
```

```python
from walkscene.sound import Mixer, Sample

mixer = Mixer()
beep = Sample([0.5, -0.5] * 1000)
playing = mixer.play(beep, volume=0.8, pan=-0.5)
block = mixer.mix()  # (1024, 2) stereo frames for one mix period
playing.stop()
```

## What this package does not do

- It does not render anything. `Drawable.pipeline` is an opaque value kept
  for your own renderer; there is no window, no shader handling and no
  viewer command.
- It does not send audio to a sound device. `Mixer.mix()` only produces
  sample blocks; feeding them to an output is up to you.
- It does not decode `.opus` files; `Sample.from_file` raises `SoundError`
  for them.

## Running the tests

```
pip install walkscene[test]
pytest
```