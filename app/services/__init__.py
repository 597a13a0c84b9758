"""
                        Services Module

Business logic behind the API, each concern in its own package:

    - orders: pricing, numbering, status workflow and the OrderService
    - notifications: customer SMS (Mock in development, Twilio otherwise)
    - realtime: admin event broadcasting (in-process or Redis pub/sub)
"""
