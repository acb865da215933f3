import io
import logging
import math

import numpy as np
import pytest

from walkscene.chunk import ChunkError, read_bytes_chunk, write_bytes_chunk, write_chunk
from walkscene.quat import angle_axis
from walkscene.scene import (
    Camera,
    Drawable,
    Light,
    LightType,
    Scene,
    SceneError,
    Transform,
)

NO_PARENT = 0xFFFFFFFF


def pad(m):
    return np.vstack([m, [0.0, 0.0, 0.0, 1.0]])


def hierarchy_entry(parent, begin, end, pos=(0, 0, 0), xyzw=(0, 0, 0, 1), scale=(1, 1, 1)):
    return (parent, begin, end, *pos, *xyzw, *scale)


def write_scene(path, names=b"rootchild", hierarchy=None, meshes=(), cameras=(),
                lights=(), extra=b""):
    if hierarchy is None:
        hierarchy = [
            hierarchy_entry(NO_PARENT, 0, 4, pos=(1, 2, 3)),
            hierarchy_entry(0, 4, 9, pos=(0, 0, 1), xyzw=(0, 0, 1, 0)),
        ]
    out = io.BytesIO()
    write_bytes_chunk(out, "str0", names)
    write_chunk(out, "xfh0", "3I3f4f3f", hierarchy)
    write_chunk(out, "msh0", "3I", meshes)
    write_chunk(out, "cam0", "I4s3f", cameras)
    write_chunk(out, "lmp0", "Ic3B3f", lights)
    out.write(extra)
    path.write_bytes(out.getvalue())
    return path


def test_load_hierarchy(tmp_path):
    scene = Scene(write_scene(tmp_path / "a.scene"))
    root, child = scene.transforms
    assert root.name == "root" and child.name == "child"
    assert root.parent is None
    assert child.parent is root
    assert np.allclose(root.position, [1, 2, 3])
    assert np.allclose(child.rotation, [0, 0, 0, 1])
    assert np.allclose(root.rotation, [1, 0, 0, 0])


def test_load_calls_on_drawable(tmp_path):
    path = write_scene(tmp_path / "a.scene", names=b"rootchildCube", meshes=[(1, 9, 13)])
    seen = []

    def on_drawable(scene, transform, name):
        seen.append((transform.name, name))
        scene.drawables.append(Drawable(transform, {"count": 36}))

    scene = Scene(path, on_drawable)
    assert seen == [("child", "Cube")]
    assert scene.drawables[0].transform is scene.transforms[1]


def test_load_cameras_and_lights(tmp_path):
    path = write_scene(
        tmp_path / "a.scene",
        cameras=[(0, b"pers", 90.0, 0.5, 100.0), (1, b"orth", 2.0, 0.1, 10.0)],
        lights=[(1, b"s", 255, 0, 0, 2.0, 10.0, 90.0), (0, b"x", 1, 1, 1, 1.0, 1.0, 1.0)],
    )
    scene = Scene(path)
    assert len(scene.cameras) == 1
    camera = scene.cameras[0]
    assert camera.transform is scene.transforms[0]
    assert camera.fovy == pytest.approx(math.pi / 2, abs=1e-6)
    assert camera.near == pytest.approx(0.5)
    assert len(scene.lights) == 1
    light = scene.lights[0]
    assert light.type is LightType.SPOT
    assert np.allclose(light.energy, [2.0, 0.0, 0.0])
    assert light.spot_fov == pytest.approx(math.pi / 2, abs=1e-6)


def test_parent_out_of_order_raises(tmp_path):
    path = write_scene(tmp_path / "a.scene", hierarchy=[hierarchy_entry(1, 0, 4)])
    with pytest.raises(SceneError, match="topological"):
        Scene(path)


def test_invalid_name_indices_raise(tmp_path):
    path = write_scene(tmp_path / "a.scene", hierarchy=[hierarchy_entry(NO_PARENT, 0, 40)])
    with pytest.raises(SceneError, match="invalid name indices"):
        Scene(path)


def test_invalid_mesh_transform_raises(tmp_path):
    path = write_scene(tmp_path / "a.scene", meshes=[(5, 0, 4)])
    with pytest.raises(SceneError, match=r"invalid transform index \(5\)"):
        Scene(path)


def test_invalid_camera_and_lamp_transform_raise(tmp_path):
    cam = write_scene(tmp_path / "c.scene", cameras=[(2, b"pers", 60.0, 0.1, 1.0)])
    with pytest.raises(SceneError, match="camera"):
        Scene(cam)
    lamp = write_scene(tmp_path / "l.scene", lights=[(9, b"p", 1, 1, 1, 1.0, 1.0, 1.0)])
    with pytest.raises(SceneError, match="lamp"):
        Scene(lamp)


def test_missing_chunk_raises(tmp_path):
    path = tmp_path / "short.scene"
    out = io.BytesIO()
    write_bytes_chunk(out, "str0", b"")
    path.write_bytes(out.getvalue())
    with pytest.raises(ChunkError):
        Scene(path)


def test_trailing_data_warns(tmp_path, caplog):
    path = write_scene(tmp_path / "a.scene", extra=b"junk")
    with caplog.at_level(logging.WARNING, logger="walkscene.scene"):
        scene = Scene(path)
    assert len(scene.transforms) == 2
    assert "trailing data" in caplog.text


def test_load_extra_hook(tmp_path):
    out = io.BytesIO()
    write_bytes_chunk(out, "lvl0", b"level")
    path = write_scene(tmp_path / "a.scene", extra=out.getvalue())

    class Level(Scene):
        def load_extra(self, stream, names, transforms):
            self.extra = (read_bytes_chunk(stream, "lvl0"), names, [t.name for t in transforms])

    level = Level(path)
    assert level.extra == (b"level", b"rootchild", ["root", "child"])


def test_identity_transform_matrices():
    t = Transform()
    expected = np.hstack([np.eye(3), np.zeros((3, 1))])
    assert np.allclose(t.make_local_to_parent(), expected)
    assert np.allclose(t.make_world_to_local(), expected)


def test_parent_to_local_inverts_local_to_parent():
    t = Transform(position=[1, -2, 3], rotation=angle_axis(0.7, [1, 1, 0]), scale=[2, 0.5, 3])
    product = t.make_parent_to_local() @ pad(t.make_local_to_parent())
    assert np.allclose(product, np.hstack([np.eye(3), np.zeros((3, 1))]))


def test_zero_scale_gives_no_nan():
    t = Transform(scale=[0, 1, 1])
    matrix = t.make_parent_to_local()
    expected = np.array([
        [0.0, 0.0, 0.0, 0.0],
        [0.0, 1.0, 0.0, 0.0],
        [0.0, 0.0, 1.0, 0.0],
    ])
    assert np.allclose(matrix, expected)


def test_world_matrices_are_inverse_through_hierarchy():
    root = Transform(position=[1, 2, 3], rotation=angle_axis(1.0, [0, 0, 1]), scale=[2, 2, 2])
    child = Transform(position=[0, 1, 0], rotation=angle_axis(-0.4, [1, 0, 0]), parent=root)
    grandchild = Transform(position=[3, 0, 0], scale=[1, 0.5, 1], parent=child)
    product = grandchild.make_world_to_local() @ pad(grandchild.make_local_to_world())
    assert np.allclose(product, np.hstack([np.eye(3), np.zeros((3, 1))]))


def test_child_translation_composes():
    root = Transform(position=[1, 2, 3])
    child = Transform(position=[0, 0, 1], parent=root)
    assert np.allclose(child.make_local_to_world()[:, 3], [1, 2, 4])


def test_projection_maps_near_plane_to_minus_one():
    camera = Camera(Transform(), fovy=math.radians(70), aspect=1.5, near=0.25)
    clip = camera.make_projection() @ np.array([0.0, 0.0, -0.25, 1.0])
    assert clip[2] / clip[3] == pytest.approx(-1.0)
    assert camera.make_projection()[0, 0] * camera.aspect == pytest.approx(
        camera.make_projection()[1, 1]
    )


def test_camera_and_light_defaults():
    t = Transform()
    camera = Camera(t)
    light = Light(t)
    assert camera.fovy == pytest.approx(math.radians(60.0))
    assert camera.near == pytest.approx(0.01)
    assert light.type is LightType.POINT
    assert light.spot_fov == pytest.approx(math.radians(45.0))


def test_copy_remaps_references():
    scene = Scene()
    root = Transform(name="root", position=[1, 0, 0])
    child = Transform(name="child", parent=root)
    scene.transforms += [root, child]
    scene.drawables.append(Drawable(child, {"count": 3}))
    scene.cameras.append(Camera(root, aspect=2.0))
    scene.lights.append(Light(child, type=LightType.HEMISPHERE))

    copy = scene.copy()
    new_root, new_child = copy.transforms
    assert new_root is not root and new_child is not child
    assert new_child.parent is new_root
    assert copy.drawables[0].transform is new_child
    assert copy.drawables[0].pipeline == {"count": 3}
    assert copy.cameras[0].transform is new_root
    assert copy.cameras[0].aspect == 2.0
    assert copy.lights[0].transform is new_child
    assert copy.lights[0].type is LightType.HEMISPHERE

    new_root.position[0] = 9.0
    copy.lights[0].energy[0] = 5.0
    assert root.position[0] == 1.0
    assert scene.lights[0].energy[0] == 1.0


def test_set_returns_mapping():
    source = Scene()
    t = Transform(name="only")
    source.transforms.append(t)
    target = Scene()
    target.transforms.append(Transform(name="stale"))
    mapping = target.set(source)
    assert mapping[t] is target.transforms[0]
    assert [x.name for x in target.transforms] == ["only"]


def test_set_with_foreign_transform_raises():
    source = Scene()
    source.cameras.append(Camera(Transform()))
    with pytest.raises(SceneError):
        Scene().set(source)