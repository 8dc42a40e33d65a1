"""Image prediction API router backed by the hosted model."""

import logging
import time
import uuid

from fastapi import APIRouter, Depends, File, HTTPException, Query, Request, UploadFile

from ..image_utils import decode_image
from ..models.predict import PredictionItem, PredictResponse
from ...errors import CallTimeoutError, ConnectionLostError
from ...service import PredictionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["predict"])


def get_service(request: Request) -> PredictionService:
    """Service created by the application lifespan."""
    service = getattr(request.app.state, "service", None)
    if service is None:
        raise HTTPException(
            status_code=503,
            detail={"code": "MODEL_UNAVAILABLE", "message": "Model service is not running"},
        )
    return service


@router.post("/predict", response_model=PredictResponse)
async def predict_image(
    file: UploadFile = File(..., description="Image file to classify"),
    top_k: int = Query(default=1, ge=1, le=100, description="Number of classes to return"),
    service: PredictionService = Depends(get_service),
) -> PredictResponse:
    """
    Classify an uploaded image.

    Decodes the upload to the model's input shape, runs it through the shared
    model and returns the label of the most probable class.

    Args:
        file: Uploaded image
        top_k: Number of ranked classes to include

    Returns:
        Top label, its confidence and the top-k predictions

    Raises:
        HTTPException: If the image is invalid or prediction fails
    """
    request_id = str(uuid.uuid4())
    start_time = time.time()

    try:
        image = decode_image(await file.read(), service.input_shape)
        predictions = await service.classify(image, top_k=top_k)
        if not predictions:
            raise RuntimeError("Model returned an empty distribution")

        best = predictions[0]
        return PredictResponse(
            request_id=request_id,
            processing_time_ms=int((time.time() - start_time) * 1000),
            label=best.label,
            index=best.index,
            confidence=best.confidence,
            predictions=[PredictionItem(**p.to_dict()) for p in predictions],
        )

    except ValueError as e:
        logger.warning(f"Invalid image for request {request_id}: {e}")
        raise HTTPException(
            status_code=400,
            detail={
                "code": "INVALID_IMAGE",
                "message": str(e),
                "request_id": request_id,
            },
        )
    except CallTimeoutError as e:
        logger.error(f"Prediction timeout for request {request_id}: {e}")
        raise HTTPException(
            status_code=504,
            detail={
                "code": "TIMEOUT",
                "message": "Prediction timed out. The model may be busy, please try again.",
                "request_id": request_id,
            },
        )
    except ConnectionLostError as e:
        logger.error(f"Model host unreachable for request {request_id}: {e}")
        raise HTTPException(
            status_code=503,
            detail={
                "code": "MODEL_UNAVAILABLE",
                "message": f"Model host is unavailable: {e}",
                "request_id": request_id,
            },
        )
    except Exception as e:
        error_msg = f"Failed to classify image: {str(e)}"
        logger.error(f"Prediction failed for request {request_id}: {error_msg}", exc_info=True)
        raise HTTPException(
            status_code=500,
            detail={
                "code": "PREDICTION_FAILED",
                "message": error_msg,
                "request_id": request_id,
            },
        )
