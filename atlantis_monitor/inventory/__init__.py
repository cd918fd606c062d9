"""Container inventory: models, loader and registration markers."""

from .loader import InventoryError, retrieve_containers
from .markers import MarkerError, MarkerStore, collect_garbage
from .models import AppDep, Container, Manifest
