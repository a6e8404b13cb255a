from .file_result_repository import FileResultRepository, FileResultRepositoryError
from .model_catalog import ModelCatalog, ModelCatalogError
from .yaml_config_loader import YamlConfigLoader, YamlConfigLoaderError

__all__ = [
    "FileResultRepository",
    "FileResultRepositoryError",
    "ModelCatalog",
    "ModelCatalogError",
    "YamlConfigLoader",
    "YamlConfigLoaderError",
]
