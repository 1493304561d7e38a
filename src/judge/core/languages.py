from __future__ import annotations
from typing import Dict, Mapping, Optional

from .errors import UnsupportedLanguage
from .models import LanguageProfile

# {source} / {executable} được thay bằng tên file khi sinh driver script
_PROFILES: Dict[str, LanguageProfile] = {
    "python": LanguageProfile(
        language="python",
        source_file="solution.py",
        executable_file="solution.py",
        image="python:3.12-slim",
        compile_cmd=None,
        run_cmd=("python3", "{source}"),
    ),
    "cpp": LanguageProfile(
        language="cpp",
        source_file="solution.cpp",
        executable_file="a.out",
        image="gcc:13",
        compile_cmd=("g++", "-O2", "-std=gnu++17", "-DONLINE_JUDGE", "-o", "{executable}", "{source}", "-lm"),
        run_cmd=("./{executable}",),
    ),
    "c": LanguageProfile(
        language="c",
        source_file="solution.c",
        executable_file="a.out",
        image="gcc:13",
        compile_cmd=("gcc", "-O2", "-std=gnu11", "-DONLINE_JUDGE", "-o", "{executable}", "{source}", "-lm"),
        run_cmd=("./{executable}",),
    ),
    "java": LanguageProfile(
        language="java",
        source_file="Solution.java",
        executable_file="Solution",
        image="eclipse-temurin:17-jdk",
        compile_cmd=("javac", "-encoding", "UTF-8", "{source}"),
        run_cmd=("java", "-Xss64m", "{executable}"),
    ),
    "ruby": LanguageProfile(
        language="ruby",
        source_file="solution.rb",
        executable_file="solution.rb",
        image="ruby:3.3-slim",
        compile_cmd=None,
        run_cmd=("ruby", "{source}"),
    ),
    "javascript": LanguageProfile(
        language="javascript",
        source_file="solution.js",
        executable_file="solution.js",
        image="node:20-slim",
        compile_cmd=None,
        run_cmd=("node", "{source}"),
    ),
}

_ALIASES = {"c++": "cpp", "py": "python", "python3": "python", "node": "javascript", "js": "javascript"}


def supported_languages():
    return sorted(_PROFILES)


def resolve(language: str, images: Optional[Mapping[str, str]] = None) -> LanguageProfile:
    """Tra profile theo ngôn ngữ; images (từ conf/sandbox.yaml) chỉ override image."""
    key = (language or "").strip().lower()
    key = _ALIASES.get(key, key)
    profile = _PROFILES.get(key)
    if profile is None:
        raise UnsupportedLanguage(language)
    if images and images.get(key):
        return LanguageProfile(
            language=profile.language,
            source_file=profile.source_file,
            executable_file=profile.executable_file,
            image=images[key],
            compile_cmd=profile.compile_cmd,
            run_cmd=profile.run_cmd,
        )
    return profile
