"""Configuration models using Pydantic for validation."""
from typing import List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
import os


class EndpointGroupingRule(BaseModel):
    """Regex rule collapsing many endpoint names into one."""
    pattern: str
    name: str
    service: Optional[str] = None  # Restrict the rule to one service

    @field_validator('pattern')
    @classmethod
    def validate_pattern(cls, v):
        import re

        try:
            re.compile(v)
        except re.error as e:
            raise ValueError(f"Invalid endpoint grouping pattern '{v}': {e}")
        return v


class NamingConfig(BaseModel):
    """Length limits and grouping applied to entity names."""
    service_name_max_length: int = Field(default=70, gt=0)
    instance_name_max_length: int = Field(default=70, gt=0)
    endpoint_name_max_length: int = Field(default=150, gt=0)
    endpoint_groupings: List[EndpointGroupingRule] = Field(default_factory=list)


class MeterRule(BaseModel):
    """A named meter expression."""
    name: str
    exp: str


class RulesConfig(BaseModel):
    """Meter rules evaluated every cycle."""
    metric_prefix: str = "meter_"
    exp_suffix: Optional[str] = None  # e.g. "service(['app'], Layer.GENERAL)"
    rules: List[MeterRule] = Field(default_factory=list)

    @field_validator('rules')
    @classmethod
    def validate_rules(cls, v):
        """Validate rule definitions."""
        if not v:
            raise ValueError("At least one rule must be defined")

        names = [r.name for r in v]
        if len(names) != len(set(names)):
            raise ValueError("Rule names must be unique")

        return v

    @model_validator(mode='after')
    def validate_expressions(self):
        """Ensure every rule, with the suffix applied, parses."""
        from meter_analyzer.expression import parse

        for rule in self.rules:
            try:
                parse(self.expression_for(rule))
            except Exception as e:
                raise ValueError(f"Rule '{rule.name}' has an invalid expression: {e}")
        return self

    def expression_for(self, rule: MeterRule) -> str:
        if self.exp_suffix:
            return f"({rule.exp}).{self.exp_suffix}"
        return rule.exp

    def metric_name_for(self, rule: MeterRule) -> str:
        return f"{self.metric_prefix}{rule.name}"


class PrometheusExporterConfig(BaseModel):
    """Prometheus pull exporter configuration."""
    enabled: bool = True
    port: int = 8000
    prefix: str = ""
    bind_address: str = "0.0.0.0"


class ExportersConfig(BaseModel):
    """Configuration for all exporters."""
    prometheus: PrometheusExporterConfig = Field(default_factory=PrometheusExporterConfig)


class GlobalConfig(BaseModel):
    """Global configuration settings."""
    evaluation_interval_s: int = 10
    log_level: str = "INFO"
    log_format: Literal["json", "text"] = "text"


class Config(BaseModel):
    """Root configuration model."""
    model_config = ConfigDict(populate_by_name=True)

    global_: GlobalConfig = Field(default_factory=GlobalConfig, alias="global")
    naming: NamingConfig = Field(default_factory=NamingConfig)
    exporters: ExportersConfig = Field(default_factory=ExportersConfig)
    rules: RulesConfig


def load_config(config_path: str) -> Config:
    """Load and validate configuration from YAML file."""
    import yaml

    if not os.path.exists(config_path):
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, 'r') as f:
        raw_config = yaml.safe_load(f) or {}

    # Apply environment variable overrides
    if env_log_level := os.getenv('LOG_LEVEL'):
        if 'global' not in raw_config:
            raw_config['global'] = {}
        raw_config['global']['log_level'] = env_log_level

    try:
        config = Config(**raw_config)
        return config
    except Exception as e:
        raise ValueError(f"Configuration validation failed: {e}")
