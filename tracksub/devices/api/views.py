"""
Device registry API.

Thin wrappers around ``DeviceService``; limit, ownership and tracking
server errors propagate as domain exceptions and are rendered by the
project exception handler.
"""

from drf_spectacular.utils import extend_schema
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from tracksub.devices.api.serializers import DeviceCreateSerializer
from tracksub.devices.api.serializers import DeviceReportSerializer
from tracksub.devices.api.serializers import DeviceSerializer
from tracksub.devices.api.serializers import DeviceSnapshotSerializer
from tracksub.devices.api.serializers import DeviceUpdateSerializer
from tracksub.devices.api.serializers import PositionQuerySerializer
from tracksub.devices.services import DeviceService


class DeviceListCreateView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="List devices",
        description="Active devices with live status and latest position.",
        tags=["Devices"],
    )
    def get(self, request):
        with DeviceService() as service:
            snapshots = service.list_devices(request.user)
        return Response(
            {"devices": DeviceSnapshotSerializer(snapshots, many=True).data},
        )

    @extend_schema(
        summary="Add a device",
        request=DeviceCreateSerializer,
        responses={201: DeviceSerializer},
        tags=["Devices"],
    )
    def post(self, request):
        serializer = DeviceCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        with DeviceService() as service:
            device = service.create_device(
                request.user,
                name=serializer.validated_data["name"],
                unique_id=serializer.validated_data["uniqueId"],
            )
        return Response(
            {
                "success": True,
                "device": DeviceSerializer(device).data,
                "message": "Device added successfully",
            },
            status=status.HTTP_201_CREATED,
        )


class DeviceDetailView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Rename a device",
        request=DeviceUpdateSerializer,
        responses={200: DeviceSerializer},
        tags=["Devices"],
    )
    def patch(self, request, device_id):
        serializer = DeviceUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        with DeviceService() as service:
            device = service.update_device(
                request.user,
                device_id,
                name=serializer.validated_data["name"],
            )
        return Response({"success": True, "device": DeviceSerializer(device).data})

    put = patch

    @extend_schema(summary="Remove a device", tags=["Devices"])
    def delete(self, request, device_id):
        with DeviceService() as service:
            service.delete_device(request.user, device_id)
        return Response({"success": True, "message": "Device deleted successfully"})


class DevicePositionsView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Position history",
        description=(
            "Positions reported by the device, by default over the last 24 hours."
        ),
        parameters=[PositionQuerySerializer],
        tags=["Devices"],
    )
    def get(self, request, device_id):
        query = PositionQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        with DeviceService() as service:
            positions = service.positions(
                request.user,
                device_id,
                start=query.validated_data.get("from"),
                end=query.validated_data.get("to"),
            )
        return Response({"positions": positions})


class DeviceReportView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Trip report",
        description=(
            "Distance, speeds and moving time over a window, by default the "
            "last 24 hours."
        ),
        parameters=[PositionQuerySerializer],
        responses={200: DeviceReportSerializer},
        tags=["Devices"],
    )
    def get(self, request, device_id):
        query = PositionQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        with DeviceService() as service:
            report = service.report(
                request.user,
                device_id,
                start=query.validated_data.get("from"),
                end=query.validated_data.get("to"),
            )
        return Response(DeviceReportSerializer(report).data)
