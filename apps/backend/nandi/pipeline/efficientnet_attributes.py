from __future__ import annotations

from pathlib import Path
from typing import Any

from nandi.pipeline.errors import ModelLoadError
from nandi.pipeline.reference_attributes import ReferenceAttributeModel
from nandi.pipeline.types import DecodedImage

# Class order must match the order used when the checkpoint was trained.
BREED_CLASSES: tuple[tuple[str, str], ...] = (
    ("Gir", "Cattle"),
    ("Holstein Friesian", "Cattle"),
    ("Murrah Buffalo", "Buffalo"),
    ("Jersey", "Cattle"),
    ("Nili Ravi", "Buffalo"),
)


class EfficientNetAttributeModel:
    """EfficientNet-B0 breed head over a torch checkpoint.

    Breed comes from the checkpoint's softmax top-1. Gender, features and
    quality are delegated to ``ReferenceAttributeModel`` until dedicated
    heads are trained.
    """

    def __init__(
        self,
        weights: str | Path,
        classes: tuple[tuple[str, str], ...] = BREED_CLASSES,
        device: str | None = None,
    ) -> None:
        try:
            import torch
            import torch.nn as nn
            import torchvision.models as models
            import torchvision.transforms as transforms
        except Exception as error:  # pragma: no cover - env dependent
            raise ModelLoadError(f"failed to import torch/torchvision: {error}") from error

        weights_path = Path(weights).expanduser()
        if not weights_path.is_file():
            raise ModelLoadError(f"attribute weights not found: {weights_path}")

        self._torch: Any = torch
        self._classes = classes
        self._device = torch.device(device or ("cuda" if torch.cuda.is_available() else "cpu"))
        self._transform = transforms.Compose(
            [
                transforms.Resize((224, 224)),
                transforms.ToTensor(),
                transforms.Normalize([0.485, 0.456, 0.406], [0.229, 0.224, 0.225]),
            ]
        )
        self._model = self._load_model(torch, nn, models, weights_path, len(classes))
        self._fallback = ReferenceAttributeModel()

    def predict(self, image: DecodedImage) -> dict[str, Any]:
        torch = self._torch
        batch = self._transform(image.image).unsqueeze(0).to(self._device)
        with torch.no_grad():
            logits = self._model(batch)
            if isinstance(logits, tuple):
                logits = logits[0]
            probs = torch.softmax(logits, dim=1).cpu().numpy()[0]

        top = int(probs.argmax())
        name, category = self._classes[top]

        prediction = self._fallback.predict(image)
        prediction["breed"] = {"name": name, "confidence": float(probs[top]), "category": category}
        return prediction

    def _load_model(self, torch: Any, nn: Any, models: Any, weights_path: Path, num_classes: int) -> Any:
        model = models.efficientnet_b0(weights=None)
        in_features = model.classifier[1].in_features
        model.classifier[1] = nn.Linear(in_features, num_classes)

        try:
            data = torch.load(weights_path, map_location=self._device, weights_only=False)
        except Exception as error:
            raise ModelLoadError(f"failed to read checkpoint {weights_path}: {error}") from error

        if isinstance(data, nn.Module):
            model = data
        elif isinstance(data, dict):
            # Checkpoints saved from DataParallel carry a "module." prefix.
            state_dict = {key.replace("module.", "", 1): value for key, value in data.items()}
            try:
                model.load_state_dict(state_dict)
            except RuntimeError as error:
                raise ModelLoadError(f"checkpoint does not match EfficientNet-B0: {error}") from error
        else:
            raise ModelLoadError(f"unknown checkpoint format: {type(data).__name__}")

        model.to(self._device)
        model.eval()
        return model
