[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "walkscene"
version = "0.1.0"
description = "Scene hierarchies, walk meshes, chunked asset files, PNG images and a software audio mixer for small 3D games"
requires-python = ">=3.10"
keywords = ["game", "scene", "walkmesh", "navmesh", "audio", "mixer", "quaternion", "png"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Games/Entertainment",
    "Topic :: Multimedia :: Sound/Audio :: Mixers",
    "Topic :: Software Development :: Libraries :: Python Modules",
]
dependencies = [
    "numpy",
    "pillow",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["walkscene"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
