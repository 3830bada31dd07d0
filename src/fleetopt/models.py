"""Core data models for fleetopt.

Defines the schemas for:
- Cluster observations (what the Platform reports)
- Cluster state (what the consumer persists between runs)
- Autoscaler policies (typed settings tree)
- Evictor advanced configuration (server-shaped rules)
- SSO connections

Server-facing records accept and emit the Platform's camelCase keys via
field aliases; Python code uses the snake_case names.
"""

from __future__ import annotations

import enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

# --- Enums ---


class ClusterStatus(enum.StrEnum):
    CREATING = "creating"
    READY = "ready"
    WARNING = "warning"
    FAILED = "failed"
    DELETING = "deleting"
    DELETED = "deleted"
    ARCHIVED = "archived"


class AgentStatus(enum.StrEnum):
    CONNECTING = "connecting"
    ONLINE = "online"
    DISCONNECTING = "disconnecting"
    DISCONNECTED = "disconnected"


class ProviderType(enum.StrEnum):
    EKS = "eks"
    GKE = "gke"
    AKS = "aks"


class LabelSelectorOperator(enum.StrEnum):
    IN = "In"
    NOT_IN = "NotIn"
    EXISTS = "Exists"
    DOES_NOT_EXIST = "DoesNotExist"


class SSOStatus(enum.StrEnum):
    ACTIVE = "STATUS_ACTIVE"
    FAILED = "STATUS_FAILED"
    INACTIVE = "STATUS_INACTIVE"
    UNKNOWN = "STATUS_UNKNOWN"


class _ApiModel(BaseModel):
    """Base for records exchanged with the Platform API."""

    model_config = ConfigDict(populate_by_name=True)

    def to_api(self) -> dict[str, Any]:
        """Serialize with camelCase keys, dropping unset optional records."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# --- Cluster Observation ---


class EKSClusterParams(_ApiModel):
    account_id: str | None = Field(None, alias="accountId")
    region: str | None = None
    cluster_name: str | None = Field(None, alias="clusterName")
    assume_role_arn: str | None = Field(None, alias="assumeRoleArn")


class GKEClusterParams(_ApiModel):
    project_id: str | None = Field(None, alias="projectId")
    region: str | None = None
    location: str | None = None
    cluster_name: str | None = Field(None, alias="clusterName")


class AKSClusterParams(_ApiModel):
    region: str | None = None
    subscription_id: str | None = Field(None, alias="subscriptionId")
    node_resource_group: str | None = Field(None, alias="nodeResourceGroup")


class ClusterObservation(_ApiModel):
    """Read projection of an external cluster as reported by the Platform.

    ``status`` and ``agent_status`` are kept as plain strings so that an
    unexpected value reaches the lifecycle controller, which rejects it.
    """

    id: str = ""
    name: str = ""
    status: str = ""
    agent_status: str = Field("", alias="agentStatus")
    credentials_id: str = Field("", alias="credentialsId")
    eks: EKSClusterParams | None = None
    gke: GKEClusterParams | None = None
    aks: AKSClusterParams | None = None

    @field_validator("id", "name", "status", "agent_status", "credentials_id", mode="before")
    @classmethod
    def _null_as_empty(cls, value: Any) -> Any:
        # A cluster without credentials reports "credentialsId": null.
        return "" if value is None else value


# --- Cluster State (consumer-persisted) ---


class ClusterState(BaseModel):
    """Persisted state of one registered cluster.

    ``id`` is empty until the cluster is registered and is cleared again
    once the cluster is archived. ``cluster_token`` is a one-shot secret.
    """

    provider: ProviderType
    name: str
    id: str = ""
    credentials_id: str = ""
    cluster_token: str = ""
    delete_nodes_on_disconnect: bool = False
    ssh_public_key: str | None = None

    # EKS
    account_id: str | None = None
    region: str | None = None
    assume_role_arn: str | None = None
    access_key_id: str | None = None
    secret_access_key: str | None = None

    # GKE
    project_id: str | None = None
    location: str | None = None
    credentials_json: str | None = None

    # AKS (shares ``region`` with EKS)
    subscription_id: str | None = None
    node_resource_group: str | None = None
    tenant_id: str | None = None
    client_id: str | None = None
    client_secret: str | None = None


# --- Autoscaler Policy ---


class Headroom(_ApiModel):
    cpu_percentage: int = Field(10, ge=0, le=100, alias="cpuPercentage")
    memory_percentage: int = Field(10, ge=0, le=100, alias="memoryPercentage")
    enabled: bool = True


class NodeConstraints(_ApiModel):
    min_cpu_cores: int = Field(0, alias="minCpuCores")
    max_cpu_cores: int = Field(32, alias="maxCpuCores")
    min_ram_mib: int = Field(2048, alias="minRamMiB")
    max_ram_mib: int = Field(262144, alias="maxRamMiB")
    enabled: bool = False


class PodPinner(_ApiModel):
    enabled: bool = True


class UnschedulablePods(_ApiModel):
    enabled: bool = False
    headroom: Headroom | None = None
    headroom_spot: Headroom | None = Field(None, alias="headroomSpot")
    node_constraints: NodeConstraints | None = Field(None, alias="nodeConstraints")
    custom_instances_enabled: bool = Field(False, alias="customInstancesEnabled")
    pod_pinner: PodPinner | None = Field(None, alias="podPinner")


class CPULimits(_ApiModel):
    min_cores: int = Field(1, ge=1, alias="minCores")
    max_cores: int = Field(20, ge=2, alias="maxCores")


class ClusterLimits(_ApiModel):
    enabled: bool = True
    cpu: CPULimits | None = None


class SpotBackups(_ApiModel):
    enabled: bool = False
    spot_backup_restore_rate_seconds: int = Field(
        1800, ge=60, alias="spotBackupRestoreRateSeconds",
    )


class SpotInterruptionPredictions(_ApiModel):
    enabled: bool = False
    spot_interruption_predictions_type: str = Field(
        "AWSRebalanceRecommendations",
        pattern=r"^(AWSRebalanceRecommendations|CASTAIInterruptionPredictions)$",
        alias="spotInterruptionPredictionsType",
    )


class SpotInstances(_ApiModel):
    enabled: bool = False
    max_reclaim_rate: int = Field(0, alias="maxReclaimRate")
    spot_backups: SpotBackups | None = Field(None, alias="spotBackups")
    spot_diversity_enabled: bool = Field(False, alias="spotDiversityEnabled")
    spot_diversity_price_increase_limit: int = Field(
        20, ge=1, alias="spotDiversityPriceIncrease",
    )
    spot_interruption_predictions: SpotInterruptionPredictions | None = Field(
        None, alias="spotInterruptionPredictions",
    )


class EmptyNodes(_ApiModel):
    enabled: bool = False
    delay_seconds: int = Field(300, alias="delaySeconds")


class EvictorPolicy(_ApiModel):
    enabled: bool = False
    dry_run: bool = Field(False, alias="dryRun")
    aggressive_mode: bool = Field(False, alias="aggressiveMode")
    scoped_mode: bool = Field(False, alias="scopedMode")
    cycle_interval: str = Field("1m", alias="cycleInterval")
    node_grace_period_minutes: int = Field(5, alias="nodeGracePeriodMinutes")
    pod_eviction_failure_back_off_interval: str = Field(
        "5s", alias="podEvictionFailureBackOffInterval",
    )
    ignore_pod_disruption_budgets: bool = Field(
        False, alias="ignorePodDisruptionBudgets",
    )


class NodeDownscaler(_ApiModel):
    enabled: bool = True
    empty_nodes: EmptyNodes | None = Field(None, alias="emptyNodes")
    evictor: EvictorPolicy | None = None


class AutoscalerPolicy(_ApiModel):
    """Typed autoscaler settings.

    Scalar fields are always serialized, even at their zero values; nested
    records are omitted when unset.
    """

    enabled: bool = False
    is_scoped_mode: bool = Field(False, alias="isScopedMode")
    node_templates_partial_matching_enabled: bool = Field(
        False, alias="nodeTemplatesPartialMatchingEnabled",
    )
    unschedulable_pods: UnschedulablePods | None = Field(None, alias="unschedulablePods")
    cluster_limits: ClusterLimits | None = Field(None, alias="clusterLimits")
    spot_instances: SpotInstances | None = Field(None, alias="spotInstances")
    node_downscaler: NodeDownscaler | None = Field(None, alias="nodeDownscaler")


# --- Evictor Advanced Config (server form) ---


class LabelSelectorExpression(_ApiModel):
    key: str
    operator: LabelSelectorOperator
    values: list[str] | None = None


class LabelSelector(_ApiModel):
    match_labels: dict[str, str] | None = Field(None, alias="matchLabels")
    match_expressions: list[LabelSelectorExpression] | None = Field(
        None, alias="matchExpressions",
    )


class PodSelector(_ApiModel):
    kind: str | None = None
    namespace: str | None = None
    label_selector: LabelSelector | None = Field(None, alias="labelSelector")


class NodeSelector(_ApiModel):
    label_selector: LabelSelector | None = Field(None, alias="labelSelector")


class SettingEnabled(_ApiModel):
    enabled: bool


class EvictionSettings(_ApiModel):
    aggressive: SettingEnabled | None = None
    disposable: SettingEnabled | None = None
    removal_disabled: SettingEnabled | None = Field(None, alias="removalDisabled")


class EvictionConfig(_ApiModel):
    """A single evictor rule as the Platform stores it."""

    pod_selector: PodSelector | None = Field(None, alias="podSelector")
    node_selector: NodeSelector | None = Field(None, alias="nodeSelector")
    settings: EvictionSettings = Field(default_factory=EvictionSettings)

    @field_validator("settings", mode="before")
    @classmethod
    def _null_settings(cls, value: Any) -> Any:
        return {} if value is None else value


class EvictorAdvancedConfig(_ApiModel):
    eviction_config: list[EvictionConfig] = Field(
        default_factory=list, alias="evictionConfig",
    )

    @field_validator("eviction_config", mode="before")
    @classmethod
    def _null_rules(cls, value: Any) -> Any:
        return [] if value is None else value


# --- SSO Connections ---


class AzureADConnector(_ApiModel):
    ad_domain: str = Field(alias="adDomain")
    client_id: str = Field(alias="clientId")
    client_secret: str | None = Field(None, alias="clientSecret")


class OktaConnector(_ApiModel):
    okta_domain: str = Field(alias="oktaDomain")
    client_id: str = Field(alias="clientId")
    client_secret: str | None = Field(None, alias="clientSecret")


class SSOConnection(_ApiModel):
    """An SSO connection; exactly one of ``aad`` / ``okta`` is set."""

    id: str | None = None
    name: str
    email_domain: str = Field(alias="emailDomain")
    additional_email_domains: list[str] | None = Field(
        None, alias="additionalEmailDomains",
    )
    aad: AzureADConnector | None = None
    okta: OktaConnector | None = None
    status: str | None = None
    error: str | None = None
