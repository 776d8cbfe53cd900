"""Ground Bounded Context - Transverse Mercator projection.

Forward and inverse conversion between geographic (latitude/longitude) and
Transverse Mercator grid coordinates using Redfearn's series, as set out in
the GDA technical manual. Series terms are carried to 8th order in the
longitude difference / grid distance ratio, giving sub-millimetre round-trip
error within ~300 km of the central meridian.

Pure math - NO region checks here. The region guard lives in
``domain.ground.regions``.
"""

from __future__ import annotations

import math
from typing import Iterable

from domain.ground.errors import ProjectionSelfTestError
from domain.ground.value_objects import GlobalPoint, PlanarPoint

# Round trip tolerance for the start-up self-test, in degrees
SELF_TEST_TOLERANCE_DEG = 1e-6


class TransverseMercator:
    """Transverse Mercator projection on an ellipsoid.

    Parameters
    ----------
    semi_major_axis: float
        Ellipsoid semi-major axis ``a`` in metres.
    inverse_flattening: float
        Ellipsoid ``1/f``. Zero means a sphere.
    central_meridian_deg: float
        Longitude of the central meridian in degrees.
    scale_factor: float
        Scale factor on the central meridian.
    origin_latitude_deg: float
        Latitude of origin in degrees.
    false_easting, false_northing: float
        Offsets added to grid coordinates, in projection units.
    unit_to_metre: float
        Size of one projection unit in metres.
    """

    def __init__(
        self,
        semi_major_axis: float,
        inverse_flattening: float,
        central_meridian_deg: float,
        scale_factor: float,
        origin_latitude_deg: float,
        false_easting: float,
        false_northing: float,
        unit_to_metre: float = 1.0,
    ) -> None:
        self.a = semi_major_axis
        self.rf = inverse_flattening
        self.f = 1.0 / inverse_flattening if inverse_flattening != 0.0 else 0.0
        self.e2 = 2.0 * self.f - self.f * self.f
        self.ep2 = self.e2 / (1.0 - self.e2)
        self.meridian = math.radians(central_meridian_deg)
        self.scale_factor = scale_factor
        self.origin_latitude = math.radians(origin_latitude_deg)
        self.false_easting = false_easting
        self.false_northing = false_northing
        self.unit_to_metre = unit_to_metre
        # Meridian arc at the latitude of origin
        self.om = self.meridian_arc(self.origin_latitude)

    # ------------------------------------------------------------------
    # Series helpers
    # ------------------------------------------------------------------
    def meridian_arc(self, lat: float) -> float:
        """Length of the meridional arc (metres) from the equator to ``lat`` radians."""
        e2 = self.e2
        e4 = e2 * e2
        e6 = e4 * e2

        a0 = 1 - (e2 / 4.0) - (3.0 * e4 / 64.0) - (5.0 * e6 / 256.0)
        a2 = (3.0 / 8.0) * (e2 + e4 / 4.0 + 15.0 * e6 / 128.0)
        a4 = (15.0 / 256.0) * (e4 + 3.0 * e6 / 4.0)
        a6 = 35.0 * e6 / 3072.0

        return self.a * (
            a0 * lat
            - a2 * math.sin(2 * lat)
            + a4 * math.sin(4 * lat)
            - a6 * math.sin(6 * lat)
        )

    def foot_point_latitude(self, m: float) -> float:
        """Foot-point latitude (radians) for a meridional arc of ``m`` metres."""
        n = self.f / (2.0 - self.f)
        n2 = n * n
        n3 = n2 * n
        n4 = n2 * n2

        g = self.a * (1.0 - n) * (1.0 - n2) * (1 + 9.0 * n2 / 4.0 + 225.0 * n4 / 64.0)
        sig = m / g

        return (
            sig
            + (3.0 * n / 2.0 - 27.0 * n3 / 32.0) * math.sin(2.0 * sig)
            + (21.0 * n2 / 16.0 - 55.0 * n4 / 32.0) * math.sin(4.0 * sig)
            + (151.0 * n3 / 96.0) * math.sin(6.0 * sig)
            + (1097.0 * n4 / 512.0) * math.sin(8.0 * sig)
        )

    # ------------------------------------------------------------------
    # Forward: lat/lon -> northing/easting
    # ------------------------------------------------------------------
    def forward(self, latitude_deg: float, longitude_deg: float) -> tuple[float, float]:
        """Return (northing, easting) for a latitude/longitude in degrees."""
        lt = math.radians(latitude_deg)
        dlon = math.radians(longitude_deg) - self.meridian
        while dlon > math.pi:
            dlon -= 2 * math.pi
        while dlon < -math.pi:
            dlon += 2 * math.pi

        e2 = self.e2
        sf = self.scale_factor
        m = self.meridian_arc(lt)

        slt = math.sin(lt)
        eslt = 1.0 - e2 * slt * slt
        eta = self.a / math.sqrt(eslt)
        rho = eta * (1.0 - e2) / eslt
        psi = eta / rho

        clt = math.cos(lt)
        wc = clt * dlon
        wc2 = wc * wc

        t = slt / clt
        t2 = t * t
        t4 = t2 * t2
        t6 = t2 * t4

        # Easting series
        trm1 = (psi - t2) / 6.0
        trm2 = (
            ((4.0 * (1.0 - 6.0 * t2) * psi + (1.0 + 8.0 * t2)) * psi - 2.0 * t2) * psi
            + t4
        ) / 120.0
        trm3 = (61 - 479.0 * t2 + 179.0 * t4 - t6) / 5040.0

        gce = (sf * eta * dlon * clt) * (((trm3 * wc2 + trm2) * wc2 + trm1) * wc2 + 1.0)
        easting = gce / self.unit_to_metre + self.false_easting

        # Northing series
        trm1 = 1.0 / 2.0
        trm2 = ((4.0 * psi + 1) * psi - t2) / 24.0
        trm3 = (
            (
                (
                    (8.0 * (11.0 - 24.0 * t2) * psi - 28.0 * (1.0 - 6.0 * t2)) * psi
                    + (1.0 - 32.0 * t2)
                )
                * psi
                - 2.0 * t2
            )
            * psi
            + t4
        ) / 720.0
        trm4 = (1385.0 - 3111.0 * t2 + 543.0 * t4 - t6) / 40320.0

        gcn = (eta * t) * ((((trm4 * wc2 + trm3) * wc2 + trm2) * wc2 + trm1) * wc2)
        northing = (gcn + m - self.om) * sf / self.unit_to_metre + self.false_northing

        return northing, easting

    # ------------------------------------------------------------------
    # Inverse: northing/easting -> lat/lon
    # ------------------------------------------------------------------
    def inverse(self, northing: float, easting: float) -> tuple[float, float]:
        """Return (latitude, longitude) in degrees for grid coordinates."""
        e2 = self.e2
        sf = self.scale_factor

        cn1 = (northing - self.false_northing) * self.unit_to_metre / sf + self.om
        fphi = self.foot_point_latitude(cn1)
        slt = math.sin(fphi)
        clt = math.cos(fphi)

        eslt = 1.0 - e2 * slt * slt
        eta = self.a / math.sqrt(eslt)
        rho = eta * (1.0 - e2) / eslt
        psi = eta / rho

        big_e = (easting - self.false_easting) * self.unit_to_metre
        x = big_e / (eta * sf)
        x2 = x * x

        t = slt / clt
        t2 = t * t
        t4 = t2 * t2

        # Latitude series
        trm1 = 1.0 / 2.0
        trm2 = ((-4.0 * psi + 9.0 * (1 - t2)) * psi + 12.0 * t2) / 24.0
        trm3 = (
            (
                (
                    (8.0 * (11.0 - 24.0 * t2) * psi - 12.0 * (21.0 - 71.0 * t2)) * psi
                    + 15.0 * ((15.0 * t2 - 98.0) * t2 + 15)
                )
                * psi
                + 180.0 * ((-3.0 * t2 + 5.0) * t2)
            )
            * psi
            + 360.0 * t4
        ) / 720.0
        trm4 = (((1575.0 * t2 + 4095.0) * t2 + 3633.0) * t2 + 1385.0) / 40320.0

        lat = fphi + (t * x * big_e / (sf * rho)) * (
            ((trm4 * x2 - trm3) * x2 + trm2) * x2 - trm1
        )

        # Longitude series
        trm1 = 1.0
        trm2 = (psi + 2.0 * t2) / 6.0
        trm3 = (
            ((-4.0 * (1.0 - 6.0 * t2) * psi + (9.0 - 68.0 * t2)) * psi + 72.0 * t2)
            * psi
            + 24.0 * t4
        ) / 120.0
        trm4 = (((720.0 * t2 + 1320.0) * t2 + 662.0) * t2 + 61.0) / 5040.0

        lon = self.meridian - (x / clt) * (((trm4 * x2 - trm3) * x2 + trm2) * x2 - trm1)

        return math.degrees(lat), math.degrees(lon)

    # ------------------------------------------------------------------
    # Value object helpers
    # ------------------------------------------------------------------
    def to_planar(self, point: GlobalPoint) -> PlanarPoint:
        northing, easting = self.forward(point.latitude, point.longitude)
        return PlanarPoint(northing=northing, easting=easting)

    def to_global(self, point: PlanarPoint) -> GlobalPoint:
        latitude, longitude = self.inverse(point.northing, point.easting)
        return GlobalPoint(latitude=latitude, longitude=longitude)


def assert_round_trip(
    projection: TransverseMercator,
    reference_points: Iterable[GlobalPoint],
    tolerance_deg: float = SELF_TEST_TOLERANCE_DEG,
) -> None:
    """Forward-then-inverse each reference point and compare.

    Raises:
        ProjectionSelfTestError: If any coordinate drifts more than tolerance_deg.
    """
    for point in reference_points:
        northing, easting = projection.forward(point.latitude, point.longitude)
        latitude, longitude = projection.inverse(northing, easting)
        lat_err = abs(point.latitude - latitude)
        lon_err = abs(point.longitude - longitude)
        if lat_err >= tolerance_deg or lon_err >= tolerance_deg:
            raise ProjectionSelfTestError(
                f"Round trip of {point} drifted by "
                f"({lat_err:.3e}, {lon_err:.3e}) degrees"
            )
