"""
memberscale 项目构建配置
"""

from setuptools import setup, find_packages
import os

# 读取 README 文件
def read_readme():
    with open("README.md", "r", encoding="utf-8") as fh:
        return fh.read()

# 读取版本信息
def read_version():
    with open("memberscale/__init__.py", "r", encoding="utf-8") as fh:
        for line in fh:
            if line.startswith("__version__"):
                return line.split("=")[1].strip().strip('"').strip("'")
    return "0.1.0"

# 读取依赖文件
def read_requirements(path="requirements.txt"):
    requirements = []
    if os.path.exists(path):
        with open(path, "r", encoding="utf-8") as fh:
            requirements = [line.strip() for line in fh if line.strip() and not line.startswith("#")]
    return requirements

setup(
    name="memberscale",
    version=read_version(),
    author="Arsenal Team",
    author_email="liugaosheng@kanzhun.com",
    description="有状态成员组扩缩容控制器 - memberscale",
    long_description=read_readme(),
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=("tests", "tests.*", "examples")),
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: Apache Software License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Topic :: Software Development :: Libraries :: Python Modules",
        "Topic :: System :: Distributed Computing",
        "Topic :: Database",
    ],
    python_requires=">=3.9",
    install_requires=read_requirements(),
    extras_require={
        "dev": read_requirements("requirements-dev.txt"),
    },
    include_package_data=True,
    package_data={
        "memberscale": [
            "config/*.yaml",
        ],
    },
    zip_safe=False,
    keywords=[
        "distributed-computing",
        "ray",
        "cluster",
        "statefulset",
        "scaling",
        "raft",
    ],
)
