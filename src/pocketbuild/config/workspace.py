"""
Project scaffolding.

Creates a minimal buildable project: manifest, launcher activity, layout,
value resources and the project.json descriptor.
"""

import re
from pathlib import Path
from typing import Optional

from pocketbuild.config.project_config import ConfigError, ProjectConfig

_PACKAGE_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9_]*(\.[a-zA-Z][a-zA-Z0-9_]*)+$")


def create_project(
    parent_dir: Path,
    name: str,
    package: str,
    min_sdk: int = 26,
    target_sdk: int = 34,
    kotlin: bool = False,
) -> ProjectConfig:
    """Scaffold a new project directory.

    Args:
        parent_dir: Directory in which the project directory is created
        name: Application name (also the project directory name)
        package: Application package identifier
        min_sdk: Minimum supported API level
        target_sdk: Target API level
        kotlin: Generate a Kotlin launcher activity instead of Java

    Returns:
        ProjectConfig for the created project

    Raises:
        ConfigError: If the name or package is invalid, or the directory exists
    """
    if not name or not re.match(r"^[A-Za-z][A-Za-z0-9_\- ]*$", name):
        raise ConfigError(f"Invalid project name: {name!r}")
    if not _PACKAGE_RE.match(package or ""):
        raise ConfigError(f"Invalid package name: {package!r}")

    project_dir = Path(parent_dir) / name
    if project_dir.exists():
        raise ConfigError(f"Project directory already exists: {project_dir}")

    config = ProjectConfig.create(
        name, package, project_dir, min_sdk=min_sdk, target_sdk=target_sdk,
        main_activity=f"{package}.MainActivity",
    )

    main_dir = project_dir / "src" / "main"
    package_dir = main_dir / "java" / Path(*package.split("."))
    package_dir.mkdir(parents=True)
    for sub in ("layout", "values"):
        (config.resources_dir / sub).mkdir(parents=True)

    _write(config.manifest_file, _manifest(package))
    if kotlin:
        _write(package_dir / "MainActivity.kt", _kotlin_activity(package))
    else:
        _write(package_dir / "MainActivity.java", _java_activity(package))
    _write(config.resources_dir / "layout" / "activity_main.xml", _LAYOUT)
    _write(config.resources_dir / "values" / "strings.xml", _strings(name))
    _write(config.resources_dir / "values" / "colors.xml", _COLORS)
    _write(config.resources_dir / "values" / "styles.xml", _STYLES)
    _write(
        project_dir / "project.json",
        project_descriptor(config, "kotlin" if kotlin else "java"),
    )

    return config


def project_descriptor(config: ProjectConfig, language: Optional[str] = None) -> str:
    """Render the project.json descriptor for a configuration."""
    lines = [
        "{",
        f'  "name": "{config.name}",',
        f'  "package": "{config.package}",',
        f'  "minSdk": {config.min_sdk},',
        f'  "targetSdk": {config.target_sdk},',
        f'  "versionCode": {config.version_code},',
        f'  "versionName": "{config.version_name}",',
    ]
    if language:
        lines.append(f'  "language": "{language}",')
    lines.append(f'  "mainActivity": "{config.main_activity or config.package + ".MainActivity"}"')
    lines.append("}")
    return "\n".join(lines) + "\n"


def _write(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def _manifest(package: str) -> str:
    return f"""<?xml version="1.0" encoding="utf-8"?>
<manifest xmlns:android="http://schemas.android.com/apk/res/android"
    package="{package}">

    <application
        android:allowBackup="true"
        android:label="@string/app_name"
        android:theme="@style/AppTheme">
        <activity
            android:name=".MainActivity"
            android:exported="true">
            <intent-filter>
                <action android:name="android.intent.action.MAIN" />
                <category android:name="android.intent.category.LAUNCHER" />
            </intent-filter>
        </activity>
    </application>

</manifest>
"""


def _java_activity(package: str) -> str:
    return f"""package {package};

import android.app.Activity;
import android.os.Bundle;

public class MainActivity extends Activity {{
    @Override
    protected void onCreate(Bundle savedInstanceState) {{
        super.onCreate(savedInstanceState);
        setContentView(R.layout.activity_main);
    }}
}}
"""


def _kotlin_activity(package: str) -> str:
    return f"""package {package}

import android.app.Activity
import android.os.Bundle

class MainActivity : Activity() {{
    override fun onCreate(savedInstanceState: Bundle?) {{
        super.onCreate(savedInstanceState)
        setContentView(R.layout.activity_main)
    }}
}}
"""


def _strings(name: str) -> str:
    return f"""<?xml version="1.0" encoding="utf-8"?>
<resources>
    <string name="app_name">{name}</string>
    <string name="hello">Hello from {name}!</string>
</resources>
"""


_LAYOUT = """<?xml version="1.0" encoding="utf-8"?>
<LinearLayout xmlns:android="http://schemas.android.com/apk/res/android"
    android:layout_width="match_parent"
    android:layout_height="match_parent"
    android:gravity="center"
    android:orientation="vertical">

    <TextView
        android:layout_width="wrap_content"
        android:layout_height="wrap_content"
        android:text="@string/hello"
        android:textSize="24sp" />

</LinearLayout>
"""

_COLORS = """<?xml version="1.0" encoding="utf-8"?>
<resources>
    <color name="colorPrimary">#3F51B5</color>
    <color name="colorPrimaryDark">#303F9F</color>
    <color name="colorAccent">#FF4081</color>
</resources>
"""

_STYLES = """<?xml version="1.0" encoding="utf-8"?>
<resources>
    <style name="AppTheme" parent="android:Theme.Material.Light.DarkActionBar">
        <item name="android:colorPrimary">@color/colorPrimary</item>
        <item name="android:colorPrimaryDark">@color/colorPrimaryDark</item>
        <item name="android:colorAccent">@color/colorAccent</item>
    </style>
</resources>
"""
