"""Scene hierarchies, walk meshes, chunked asset files, PNG images and audio mixing for small 3D games."""

__version__ = "0.1.0"

__all__ = ["chunk", "datapath", "quat", "scene", "walkmesh", "sound", "image", "orbit"]