"""Rule catalog loading and installation into OPA.

Catalog layout under rule_catalog_path::

    modules/
        audit.rego            # audit rule of package validator.gcp.lib
        constraints.rego
        util.rego
        <rule>.rego           # the rule template
    constraints/
        <constraintName>/constraint.yaml

Modules are uploaded as OPA policies. Constraints are installed as the
data document data.constraints keyed by constraint name, which is what the
audit rule iterates. Module sources are also kept in memory and attached to
every violation for troubleshooting.

Any problem here is a startup failure: the engine then acknowledges and
drops every event until it is restarted with a fixed catalog.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from asset_compliance_engine.core.interfaces import IOPAClient
from asset_compliance_engine.errors import OPAClientError, RuleCatalogError
from asset_compliance_engine.observability import get_logger

logger = get_logger(__name__)

CONSTRAINT_FILE_NAME = "constraint.yaml"
CONSTRAINTS_DATA_PATH = "constraints"


@dataclass
class RuleCatalog:
    """Rego modules and constraints of one rule.

    Attributes:
        modules: Module file name -> Rego source.
        constraints: Constraint name -> parsed constraint.yaml.
    """

    modules: dict[str, str] = field(default_factory=dict)
    constraints: dict[str, dict[str, Any]] = field(default_factory=dict)


def load_rule_catalog(
    catalog_path: Path,
    modules_folder_name: str = "modules",
    constraints_folder_name: str = "constraints",
) -> RuleCatalog:
    """Read the rule catalog from disk.

    Args:
        catalog_path: Root folder of the catalog.
        modules_folder_name: Sub-folder holding *.rego files.
        constraints_folder_name: Sub-folder holding <name>/constraint.yaml.

    Returns:
        The loaded catalog.

    Raises:
        RuleCatalogError: If the modules folder is missing or empty, or a
            constraint file is unreadable or not a YAML mapping.
    """
    modules_dir = catalog_path / modules_folder_name
    if not modules_dir.is_dir():
        raise RuleCatalogError(f"Rego modules folder not found: {modules_dir}")

    catalog = RuleCatalog()
    for rego_file in sorted(modules_dir.glob("*.rego")):
        try:
            catalog.modules[rego_file.name] = rego_file.read_text(encoding="utf-8")
        except OSError as exc:
            raise RuleCatalogError(f"Cannot read Rego module {rego_file}: {exc}") from exc
    if not catalog.modules:
        raise RuleCatalogError(f"No Rego module found in {modules_dir}")

    constraints_dir = catalog_path / constraints_folder_name
    if constraints_dir.is_dir():
        for constraint_dir in sorted(p for p in constraints_dir.iterdir() if p.is_dir()):
            constraint_file = constraint_dir / CONSTRAINT_FILE_NAME
            try:
                raw = yaml.safe_load(constraint_file.read_text(encoding="utf-8"))
            except (OSError, yaml.YAMLError) as exc:
                raise RuleCatalogError(f"Cannot load constraint {constraint_file}: {exc}") from exc
            if not isinstance(raw, dict):
                raise RuleCatalogError(f"Constraint {constraint_file} is not a YAML mapping")
            catalog.constraints[constraint_dir.name] = raw
    else:
        logger.warning("Constraints folder not found, no constraint loaded", constraints_dir=str(constraints_dir))

    logger.info(
        "Rule catalog loaded",
        modules=list(catalog.modules),
        constraints=list(catalog.constraints),
    )
    return catalog


async def install_rule_catalog(opa_client: IOPAClient, catalog: RuleCatalog, rule_name: str) -> None:
    """Push the catalog into OPA.

    Module ids are prefixed with the rule name so OPA policy listings show
    which rule they belong to. data.constraints, the assets working document
    and the validator.gcp.lib package are global, so one sidecar serves
    exactly one rule.

    Raises:
        RuleCatalogError: If OPA rejects a module or the constraints document.
    """
    try:
        for file_name, source in catalog.modules.items():
            await opa_client.upload_policy(f"{rule_name}/{file_name}", source)
        await opa_client.put_document(CONSTRAINTS_DATA_PATH, catalog.constraints)
    except OPAClientError as exc:
        raise RuleCatalogError(f"OPA rejected the rule catalog: {exc.message}") from exc
    logger.info("Rule catalog installed in OPA", rule_name=rule_name, modules_count=len(catalog.modules))
