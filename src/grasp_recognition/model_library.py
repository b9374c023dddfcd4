"""
Grasp Model Library Module

File-backed store of grasp models. Each model is a JSON descriptor holding
its id, object name and grasps, next to a PLY file with its point cloud.
"""

import json
import logging
from pathlib import Path
from typing import List, Optional, Union

import open3d as o3d

from .graspdb import Grasp, GraspModel

logger = logging.getLogger(__name__)


class GraspModelLibrary:
    """
    Reads and writes grasp models under a root directory.

    Layout:
        <root>/<id>.json   {"id", "object_name", "point_cloud", "grasps"}
        <root>/<id>.ply    point cloud referenced by the descriptor
    """

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)

    def _descriptor_path(self, model_id: int) -> Path:
        return self.root / f"{model_id}.json"

    def load_model(self, descriptor: Path) -> GraspModel:
        """
        Load one model from its JSON descriptor.

        Args:
            descriptor: Path of the descriptor file

        Returns:
            GraspModel; its point cloud is empty if the cloud file is missing
        """
        try:
            data = json.loads(descriptor.read_text(encoding="utf-8"))
            model_id = int(data['id'])
            object_name = str(data['object_name'])
            grasps = [Grasp.from_dict(g) for g in data.get('grasps', [])]
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            raise ValueError(f"Invalid grasp model descriptor {descriptor}: {e}") from e

        point_cloud = o3d.geometry.PointCloud()
        cloud_name = data.get('point_cloud')
        if cloud_name:
            cloud_path = self.root / cloud_name
            if cloud_path.exists():
                point_cloud = o3d.io.read_point_cloud(str(cloud_path))
            else:
                logger.warning("Point cloud %s for model %d not found", cloud_path, model_id)

        return GraspModel(
            id=model_id,
            object_name=object_name,
            point_cloud=point_cloud,
            grasps=grasps
        )

    def load_models(self) -> List[GraspModel]:
        """Load every model in the library, ordered by id."""
        if not self.root.is_dir():
            logger.warning("Grasp model library %s does not exist", self.root)
            return []

        models = [self.load_model(path) for path in self.root.glob("*.json")]
        models.sort(key=lambda m: m.id)
        logger.debug("Loaded %d grasp models from %s", len(models), self.root)
        return models

    def get_model(self, model_id: int) -> Optional[GraspModel]:
        descriptor = self._descriptor_path(model_id)
        if not descriptor.exists():
            return None
        return self.load_model(descriptor)

    def save_model(self, model: GraspModel) -> Path:
        """
        Write a model's descriptor and point cloud.

        Args:
            model: Model to store; an existing model with the same id is replaced

        Returns:
            Path of the written descriptor
        """
        self.root.mkdir(parents=True, exist_ok=True)

        cloud_name = None
        if model.has_point_cloud():
            cloud_name = f"{model.id}.ply"
            o3d.io.write_point_cloud(str(self.root / cloud_name), model.point_cloud)

        descriptor = self._descriptor_path(model.id)
        descriptor.write_text(
            json.dumps({
                'id': model.id,
                'object_name': model.object_name,
                'point_cloud': cloud_name,
                'grasps': [g.to_dict() for g in model.grasps]
            }, indent=2),
            encoding="utf-8"
        )
        return descriptor
