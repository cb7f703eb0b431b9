"""APK packaging task.

Assembles the unsigned archive from the linked resources, the converted
bytecode and any native libraries.
"""

import zipfile
from pathlib import Path
from typing import List, Set

from pocketbuild.build.context import (
    DEX_FILES,
    NATIVE_ABIS,
    NATIVE_LIBS_DIR,
    RESOURCES_APK,
    UNSIGNED_APK,
    BuildSession,
)
from pocketbuild.build.errors import BuildError, BuildPhase
from pocketbuild.build.tasks.base import Task


def dex_entry_name(index: int) -> str:
    return "classes.dex" if index == 0 else f"classes{index + 1}.dex"


class PackageTask(Task):
    """Write the unsigned APK."""

    name = "Package APK"
    phase = BuildPhase.PACKAGING

    def native_roots(self, session: BuildSession) -> List[Path]:
        roots = []
        built = session.get(NATIVE_LIBS_DIR)
        if built is not None:
            roots.append(Path(built))
        roots += [session.config.libs_dir, session.config.jni_libs_dir]
        return [root for root in roots if root.is_dir()]

    def execute(self, session: BuildSession) -> bool:
        resources = Path(session.get(RESOURCES_APK, default=session.resources_apk))
        if not resources.is_file():
            raise BuildError(self.phase, f"Linked resources not found: {resources}")

        output = session.unsigned_apk
        output.parent.mkdir(parents=True, exist_ok=True)
        written: Set[str] = set()

        with zipfile.ZipFile(output, "w", zipfile.ZIP_DEFLATED) as apk:
            with zipfile.ZipFile(resources) as res:
                for info in res.infolist():
                    if info.filename in written:
                        continue
                    apk.writestr(info, res.read(info.filename), compress_type=info.compress_type)
                    written.add(info.filename)
            session.check_cancelled(self.phase)

            dex_files = list(session.get(DEX_FILES, list, []))
            for index, dex in enumerate(dex_files):
                name = dex_entry_name(index)
                apk.write(dex, name)
                written.add(name)
            if not dex_files:
                session.warning("Packaging an APK without bytecode")

            native_count = 0
            for root in self.native_roots(session):
                for abi in NATIVE_ABIS:
                    abi_dir = root / abi
                    if not abi_dir.is_dir():
                        continue
                    for lib in sorted(abi_dir.glob("*.so")):
                        name = f"lib/{abi}/{lib.name}"
                        if name in written:
                            continue
                        apk.write(lib, name)
                        written.add(name)
                        native_count += 1

        session.log(
            f"Packaged {len(written)} entries ({len(dex_files)} dex, {native_count} native)"
        )
        session.put(UNSIGNED_APK, output)
        return True
